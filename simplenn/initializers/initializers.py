"""A module containing objects to instantiate various neural network components."""
from ..activations import (
    ReLU,
    Tanh,
    Sigmoid,
    Softmax,
    Identity,
    ActivationBase,
)

from ..utils import approx_normal, get_rng


class ActivationInitializer(object):
    def __init__(self, param=None):
        """
        A class for initializing activation functions. Valid `param` values
        are:
            (a) ``__str__`` representations of an `ActivationBase` instance
            (b) `ActivationBase` instance

        If `param` is `None`, return the identity function: f(X) = X
        """
        self.param = param

    def __call__(self):
        """Initialize activation function"""
        param = self.param
        if param is None:
            act = Identity()
        elif isinstance(param, ActivationBase):
            act = param
        elif isinstance(param, str):
            act = self.init_from_str(param)
        else:
            raise ValueError("Unknown activation: {}".format(param))
        return act

    def init_from_str(self, act_str):
        """Initialize activation function from the `param` string"""
        act_str = act_str.lower()
        if act_str == "relu":
            act_fn = ReLU()
        elif act_str == "tanh":
            act_fn = Tanh()
        elif act_str == "sigmoid":
            act_fn = Sigmoid()
        elif act_str == "softmax":
            act_fn = Softmax()
        elif act_str == "identity":
            act_fn = Identity()
        else:
            raise ValueError("Unknown activation: {}".format(act_str))
        return act_fn


class WeightInitializer(object):
    def __init__(self, std=0.1, mode="approx_normal", rng=None):
        """
        A factory for weight initializers.

        Parameters
        ----------
        std : float
            The standard deviation of the initial weights. Default is 0.1.
        mode : str (default: 'approx_normal')
            The weight initialization strategy. Valid entries are
            {"approx_normal", "std_normal"}. `approx_normal` sums four uniform
            draws per weight (see :func:`~simplenn.utils.approx_normal`);
            `std_normal` uses the generator's Gaussian sampler.
        rng : :py:class:`Generator <numpy.random.Generator>`, int, or None
            The generator (or seed) the weights are drawn from. Default is
            None.
        """
        if mode not in ["approx_normal", "std_normal"]:
            raise ValueError("Unrecognize initialization mode: {}".format(mode))

        self.std = std
        self.mode = mode
        self.rng = get_rng(rng)

    def __call__(self, weight_shape):
        """Initialize weights according to the specified strategy"""
        if self.mode == "approx_normal":
            W = approx_normal(weight_shape, self.std, self.rng)
        else:
            W = self.std * self.rng.standard_normal(weight_shape)
        return W
