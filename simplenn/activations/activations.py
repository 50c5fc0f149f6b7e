"""A collection of activation function objects for building neural networks"""

from abc import ABC, abstractmethod

import numpy as np


class ActivationBase(ABC):
    def __init__(self, **kwargs):
        """
        Initialize the ActivationBase object.

        Notes
        -----
        Every activation in this module expresses its derivative in terms of
        the activation *output* `y` rather than its input `z`. Layers store
        the output after the forward pass and evaluate ``grad(y)`` on it, so
        the pre-activation values never need to be kept around.
        """
        super().__init__()

    def __call__(self, z):
        """Apply the activation function to an input"""
        return self.fn(z)

    @abstractmethod
    def fn(self, z):
        """Apply the activation function to an input"""
        raise NotImplementedError

    @abstractmethod
    def grad(self, y):
        """Compute the derivative of the activation, given its output `y`"""
        raise NotImplementedError


class Sigmoid(ActivationBase):
    def __init__(self):
        """A logistic sigmoid activation function."""
        super().__init__()

    def __str__(self):
        """Return a string representation of the activation function"""
        return "Sigmoid"

    def fn(self, z):
        r"""
        Evaluate the logistic sigmoid, :math:`\sigma`, on the elements of input `z`.

        .. math::

            \sigma(x_i) = \frac{1}{1 + e^{-x_i}}
        """
        return 1 / (1 + np.exp(-z))

    def grad(self, y):
        r"""
        Evaluate the first derivative of the logistic sigmoid, given the
        sigmoid output `y`.

        .. math::

            \frac{\partial \sigma}{\partial x_i} = y_i (1 - y_i)
        """
        return y * (1 - y)


class Tanh(ActivationBase):
    def __init__(self):
        """A hyperbolic tangent activation function."""
        super().__init__()

    def __str__(self):
        """Return a string representation of the activation function"""
        return "Tanh"

    def fn(self, z):
        """Compute the tanh function on the elements of input `z`."""
        return np.tanh(z)

    def grad(self, y):
        r"""
        Evaluate the first derivative of the tanh function, given the tanh
        output `y`.

        .. math::

            \frac{\partial \tanh}{\partial x_i}  =  1 - y_i^2
        """
        return 1 - y ** 2


class ReLU(ActivationBase):
    """
    A rectified linear activation function.

    Notes
    -----
    Since :math:`\\text{ReLU}(z) > 0` exactly when :math:`z > 0`, the
    derivative can be read off the output just as well as the input.
    """

    def __init__(self):
        super().__init__()

    def __str__(self):
        """Return a string representation of the activation function"""
        return "ReLU"

    def fn(self, z):
        r"""
        Evaulate the ReLU function on the elements of input `z`.

        .. math::

            \text{ReLU}(z_i)
                &=  z_i \ \ \ \ &&\text{if }z_i > 0 \\
                &=  0 \ \ \ \ &&\text{otherwise}
        """
        return np.clip(z, 0, np.inf)

    def grad(self, y):
        r"""
        Evaulate the first derivative of the ReLU function, given the ReLU
        output `y`.

        .. math::

            \frac{\partial \text{ReLU}}{\partial x_i}
                &=  1 \ \ \ \ &&\text{if }y_i > 0 \\
                &=  0   \ \ \ \ &&\text{otherwise}
        """
        return (y > 0).astype(float)


class Softmax(ActivationBase):
    def __init__(self):
        """
        A softmax activation over a single output vector.

        Notes
        -----
        The true derivative of the softmax is a full Jacobian, which cannot be
        represented by an elementwise gradient buffer. :meth:`grad` returns 1
        for every unit instead, so the backpropagated delta is just the
        incoming error. For errors of the form ``output - target`` this is
        exactly the gradient of the cross-entropy loss wrt. the softmax
        input; with any other output loss it is an approximation.
        """
        super().__init__()

    def __str__(self):
        """Return a string representation of the activation function"""
        return "Softmax"

    def fn(self, z):
        r"""
        Evaluate the softmax on input vector `z`.

        .. math::

            y_i = \frac{e^{z_i - m}}{\sum_j e^{z_j - m}}, \ \ \ m = \max_j z_j

        Subtracting the maximum leaves the result unchanged and keeps the
        exponentials from overflowing.
        """
        e_z = np.exp(z - np.max(z))
        return e_z / e_z.sum()

    def grad(self, y):
        """Return the constant unit gradient (see class notes)."""
        return np.ones_like(y)


class Identity(ActivationBase):
    def __init__(self):
        """An identity activation function, :math:`f(z) = z`."""
        super().__init__()

    def __str__(self):
        """Return a string representation of the activation function"""
        return "Identity"

    def fn(self, z):
        return z

    def grad(self, y):
        return np.ones_like(y)
