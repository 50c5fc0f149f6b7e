"""A collection of chainable layer objects for building neural networks"""
import sys
from abc import ABC, abstractmethod

import numpy as np

from ..activations import Softmax, Tanh
from ..initializers import WeightInitializer, ActivationInitializer
from ..utils import col2im, conv2D, conv2D_naive, conv_fits, im2col


class LayerBase(ABC):
    def __init__(self, depth, width, height, window=1):
        """
        An abstract base class inherited by every layer in a
        :class:`~simplenn.chain.LayerChain`.

        Notes
        -----
        A layer owns three node buffers, allocated once here and never
        resized:

        - ``outputs`` and ``errors`` hold ``nnodes * window`` values laid out
          as a ring of per-timestep snapshots. Snapshot `t` occupies
          ``[t * nnodes, (t + 1) * nnodes)`` and snapshot 0 is the most
          recent. Layers without history have ``window = 1``.
        - ``gradients`` holds the ``nnodes`` activation derivatives of the
          current output.

        Trainable arrays live in ``parameters``; ``updates`` holds an
        accumulator of identical shape for each of them. Backpropagation adds
        into the accumulators and :meth:`update` applies and zeroes them.

        Parameters
        ----------
        depth, width, height : int
            The shape of the layer output. Dense layers use ``(nnodes, 1, 1)``.
        window : int
            The number of timesteps of outputs / errors retained. Default is 1.
        """
        if min(depth, width, height) < 1:
            fstr = "Layer shape must be positive, but got ({}, {}, {})"
            raise ValueError(fstr.format(depth, width, height))
        if window < 1:
            raise ValueError("window must be positive, but got {}".format(window))

        self.lid = None
        self.depth = depth
        self.width = width
        self.height = height
        self.window = window
        self.nnodes = depth * width * height

        self.outputs = np.zeros(self.nnodes * window)
        self.gradients = np.zeros(self.nnodes)
        self.errors = np.zeros(self.nnodes * window)

        self.parameters = {}
        self.updates = {}

        super().__init__()

    @abstractmethod
    def forward(self, prev, last=False):
        """Compute the layer outputs from the outputs of layer `prev`"""
        raise NotImplementedError

    @abstractmethod
    def backward(self, prev):
        """Propagate the layer errors into `prev` and accumulate gradients"""
        raise NotImplementedError

    @property
    def shape(self):
        """The layer shape as a `(depth, width, height)` tuple"""
        return (self.depth, self.width, self.height)

    @property
    def weights(self):
        return self.parameters.get("weights")

    @property
    def biases(self):
        return self.parameters.get("biases")

    @property
    def u_weights(self):
        return self.updates.get("weights")

    @property
    def u_biases(self):
        return self.updates.get("biases")

    @property
    def current_outputs(self):
        """A view of the most recent output snapshot"""
        return self.outputs[: self.nnodes]

    @property
    def current_errors(self):
        """A view of the most recent error snapshot"""
        return self.errors[: self.nnodes]

    def snapshot(self, buf, t):
        """Return a view of timestep `t` of the ring buffer `buf`"""
        return buf[t * self.nnodes : (t + 1) * self.nnodes]

    def _shift(self, buf):
        """Move every snapshot of `buf` one timestep back, dropping the oldest"""
        n = self.nnodes
        if self.window > 1:
            buf[n:] = buf[:-n].copy()

    def update(self, rate):
        """
        Apply the accumulated gradients with learning rate `rate` and zero
        the accumulators.
        """
        for k, v in self.parameters.items():
            v -= rate * self.updates[k]
            self.updates[k].fill(0)

    def reset(self):
        """Zero the most recent output snapshot, breaking the recurrence."""
        self.current_outputs.fill(0)

    def error_total(self):
        """Return the mean squared error of the most recent error snapshot."""
        e = self.current_errors
        return float(np.mean(e * e))

    def release(self):
        """Drop every buffer held by the layer."""
        self.outputs = self.gradients = self.errors = np.zeros(0)
        self.parameters = {}
        self.updates = {}

    @property
    def hyperparameters(self):
        """Return a dictionary containing the layer hyperparameters."""
        return {
            "layer": self.__class__.__name__,
            "lid": self.lid,
            "shape": self.shape,
            "window": self.window,
        }

    def summary(self):
        """Return a dict of the layer parameters, hyperparameters, and ID."""
        return {
            "layer": self.hyperparameters["layer"],
            "parameters": self.parameters,
            "hyperparameters": self.hyperparameters,
        }

    def dump(self, fp=None):
        """
        Write a human-readable rendering of the layer shape, outputs, and
        parameters to the file object `fp` (default: stdout).
        """
        fp = sys.stdout if fp is None else fp
        fstr = "Layer{} ".format(self.lid)
        if self.lid:
            fstr += "(<- Layer{}) ".format(self.lid - 1)
        fstr += "{} shape={}, nodes={}".format(
            self.hyperparameters["layer"], self.shape, self.nnodes
        )
        if self.window > 1:
            fstr += ", window={}".format(self.window)
        fp.write(fstr + "\n")

        for t in range(self.window):
            Y = self.snapshot(self.outputs, t)
            Y = Y.reshape(self.depth, self.height, self.width)
            label = "  outputs" if self.window == 1 else "  outputs(t={})".format(-t)
            fp.write(label + " =\n")
            for z in range(self.depth):
                fp.write("    {}:\n".format(z))
                for row in Y[z]:
                    fp.write("      [{}]\n".format(_fmt(row)))
        self._dump_params(fp)

    def _dump_params(self, fp):
        for k, v in self.parameters.items():
            fp.write("  {} = [\n".format(k))
            for row in v.reshape(v.shape[0], -1):
                fp.write("    [{}]\n".format(_fmt(row)))
            fp.write("  ]\n")


def _fmt(row):
    return " ".join("{:.4f}".format(v) for v in row)


class Input(LayerBase):
    def __init__(self, depth, width=1, height=1, window=1):
        """
        The head of a layer chain. Holds the raw input values as its outputs.

        Parameters
        ----------
        depth, width, height : int
            The shape of the input.
        window : int
            The number of past inputs retained. Set this to the window of a
            following :class:`RecurrentThroughTime` layer (or larger) so that
            its input-to-hidden weights can be trained through time. Default
            is 1.
        """
        super().__init__(depth, width, height, window)

    def forward(self, values, last=False):
        """
        Store `values` as the most recent output snapshot, shifting the
        history back by one timestep first.
        """
        values = np.asarray(values, dtype=float).ravel()
        if values.size != self.nnodes:
            fstr = "Expected {} input values, but got {}"
            raise ValueError(fstr.format(self.nnodes, values.size))
        self._shift(self.outputs)
        self.current_outputs[:] = values

    def backward(self, prev):
        """Input layers have no predecessor, so there is nothing to do."""
        return None


class FullyConnected(LayerBase):
    def __init__(self, prev, n_out, std=0.1, act_fn=None, init="approx_normal", rng=None):
        r"""
        A fully-connected (dense) layer.

        Notes
        -----
        A fully connected layer computes the function

        .. math::

            \mathbf{y} = f( \mathbf{Wx} + \mathbf{b} )

        where `f` is the activation nonlinearity, **W** and **b** are
        parameters of the layer, and **x** is the current output of the
        preceding layer.

        If `act_fn` is None, the activation depends on the layer's position in
        the chain: :class:`~simplenn.activations.Tanh` for hidden layers and
        :class:`~simplenn.activations.Softmax` for the final layer.

        Parameters
        ----------
        prev : :class:`LayerBase` instance
            The preceding layer, used to size the weights.
        n_out : int
            The dimensionality of the layer output
        std : float
            The standard deviation of the initial weights. Default is 0.1.
        act_fn : str, :doc:`Activation <simplenn.activations>` object, or None
            The element-wise output nonlinearity. Default is None.
        init : {'approx_normal', 'std_normal'}
            The weight initialization strategy. Default is `'approx_normal'`.
        rng : :py:class:`Generator <numpy.random.Generator>`, int, or None
            The source of the initial weights. Default is None.
        """  # noqa: E501
        super().__init__(n_out, 1, 1)

        self.std = std
        self.init = init
        self.n_in = prev.nnodes
        self.n_out = n_out
        self.act_fn = None if act_fn is None else ActivationInitializer(act_fn)()
        self._hidden_fn, self._last_fn = Tanh(), Softmax()
        self._init_params(rng)

    def _init_params(self, rng):
        init_weights = WeightInitializer(self.std, mode=self.init, rng=rng)

        W = init_weights((self.n_out, self.n_in))
        b = np.zeros(self.n_out)

        self.parameters = {"weights": W, "biases": b}
        self.updates = {"weights": np.zeros_like(W), "biases": np.zeros_like(b)}

    @property
    def hyperparameters(self):
        """Return a dictionary containing the layer hyperparameters."""
        hp = super().hyperparameters
        hp.update(
            {
                "init": self.init,
                "std": self.std,
                "n_in": self.n_in,
                "n_out": self.n_out,
                "act_fn": None if self.act_fn is None else str(self.act_fn),
            }
        )
        return hp

    def activation(self, last=False):
        """Return the activation used when the layer is (not) the last one"""
        if self.act_fn is not None:
            return self.act_fn
        return self._last_fn if last else self._hidden_fn

    def forward(self, prev, last=False):
        """
        Compute the layer output from the current outputs of `prev`.

        Parameters
        ----------
        prev : :class:`LayerBase` instance
            The preceding layer.
        last : bool
            Whether this layer is the last one in the chain. Default is False.
        """
        W = self.parameters["weights"]
        b = self.parameters["biases"]
        act_fn = self.activation(last)

        Z = W @ prev.current_outputs + b
        Y = act_fn(Z)
        self.outputs[:] = Y
        self.gradients[:] = act_fn.grad(Y)

    def backward(self, prev):
        """
        Backprop the layer errors into `prev` and accumulate the weight and
        bias gradients.
        """
        W = self.parameters["weights"]

        dZ = self.errors * self.gradients
        prev.current_errors[:] = W.T @ dZ

        self.updates["weights"] += np.outer(dZ, prev.current_outputs)
        self.updates["biases"] += dZ

    def _dump_params(self, fp):
        fp.write("  act_fn={}\n".format(self.hyperparameters["act_fn"]))
        super()._dump_params(fp)


class Conv2D(LayerBase):
    def __init__(
        self,
        prev,
        depth,
        width,
        height,
        kernel_size,
        padding=0,
        stride=1,
        std=0.1,
        act_fn="relu",
        init="approx_normal",
        rng=None,
    ):
        """
        Apply a two-dimensional correlation kernel over the output volume of
        the preceding layer.

        Notes
        -----
        Equations::

            out[z1, y1, x1] = act_fn(b[z1] + sum_{z0, dy, dx}
                in[z0, s * y1 - p + dy, s * x1 - p + dx] * W[z1, z0, dy, dx])

        Source coordinates outside the input volume contribute nothing (zero
        padding). The kernel is not flipped. Each spatial axis must satisfy
        ``(size_out - 1) * stride + kernel_size <= size_in + 2 * padding``.

        Parameters
        ----------
        prev : :class:`LayerBase` instance
            The preceding layer. Its `(depth, width, height)` is the input
            volume.
        depth : int
            The number of kernels / output channels.
        width, height : int
            The spatial size of the output.
        kernel_size : int
            The side length of each square kernel. Must be odd.
        padding : int
            The number of zero rows / columns around the input. Default is 0.
        stride : int
            The hop of the kernel over the input. Default is 1.
        std : float
            The standard deviation of the initial weights. Default is 0.1.
        act_fn : str, :doc:`Activation <simplenn.activations>` object, or None
            The output nonlinearity. Default is `'relu'`.
        init : {'approx_normal', 'std_normal'}
            The weight initialization strategy. Default is `'approx_normal'`.
        rng : :py:class:`Generator <numpy.random.Generator>`, int, or None
            The source of the initial weights. Default is None.
        """
        if kernel_size < 1 or kernel_size % 2 != 1:
            fstr = "kernel_size must be odd and positive, but got {}"
            raise ValueError(fstr.format(kernel_size))
        if stride < 1:
            raise ValueError("stride must be positive, but got {}".format(stride))
        if padding < 0:
            raise ValueError("padding must be >= 0, but got {}".format(padding))
        for size_in, size_out, axis in [
            (prev.width, width, "width"),
            (prev.height, height, "height"),
        ]:
            if not conv_fits(size_in, size_out, kernel_size, stride, padding):
                fstr = (
                    "Output {} {} is too large: ({} - 1) * {} + {} > {} + 2 * {}"
                )
                raise ValueError(
                    fstr.format(
                        axis, size_out, size_out, stride, kernel_size, size_in, padding
                    )
                )

        super().__init__(depth, width, height)

        self.std = std
        self.init = init
        self.stride = stride
        self.padding = padding
        self.kernel_size = kernel_size
        self.in_ch = prev.depth
        self.in_dims = (prev.height, prev.width)
        self.act_fn = ActivationInitializer(act_fn)()
        self._init_params(rng)

    def _init_params(self, rng):
        init_weights = WeightInitializer(self.std, mode=self.init, rng=rng)

        k = self.kernel_size
        W = init_weights((self.depth, self.in_ch, k, k))
        b = np.zeros(self.depth)

        self.parameters = {"weights": W, "biases": b}
        self.updates = {"weights": np.zeros_like(W), "biases": np.zeros_like(b)}

    @property
    def hyperparameters(self):
        """Return a dictionary containing the layer hyperparameters."""
        hp = super().hyperparameters
        hp.update(
            {
                "init": self.init,
                "std": self.std,
                "in_ch": self.in_ch,
                "out_ch": self.depth,
                "kernel_size": self.kernel_size,
                "padding": self.padding,
                "stride": self.stride,
                "act_fn": str(self.act_fn),
            }
        )
        return hp

    @property
    def out_dims(self):
        return (self.height, self.width)

    def _input_volume(self, prev):
        return prev.current_outputs.reshape((self.in_ch,) + self.in_dims)

    def forward(self, prev, last=False):
        """
        Compute the layer output from the current outputs of `prev`.

        Parameters
        ----------
        prev : :class:`LayerBase` instance
            The preceding layer.
        last : bool
            Unused. Default is False.
        """
        W = self.parameters["weights"]
        b = self.parameters["biases"]
        s, p = self.stride, self.padding

        Z = conv2D(self._input_volume(prev), W, s, p, self.out_dims)
        Y = self.act_fn(Z + b.reshape(-1, 1, 1))

        self.outputs[:] = Y.ravel()
        self.gradients[:] = self.act_fn.grad(Y).ravel()

    def backward(self, prev):
        """
        Backprop the layer errors into `prev` and accumulate the kernel and
        bias gradients.

        Notes
        -----
        Relies on :func:`~simplenn.utils.im2col` and
        :func:`~simplenn.utils.col2im` to vectorize the gradient calculation.
        See :meth:`_bwd_naive` for a more straightforward implementation.
        """
        W = self.parameters["weights"]
        k, s, p = self.kernel_size, self.stride, self.padding
        X = self._input_volume(prev)

        # columnize X, W, and dLdZ
        X_col = im2col(X, k, p, s, self.out_dims)
        W_col = W.reshape(self.depth, -1)
        dZ_col = (self.errors * self.gradients).reshape(self.depth, -1)

        self.updates["weights"] += (dZ_col @ X_col.T).reshape(W.shape)
        self.updates["biases"] += dZ_col.sum(axis=1)

        dX = col2im(W_col.T @ dZ_col, X.shape, k, p, s, self.out_dims)
        prev.current_errors[:] = dX.ravel()

    def _fwd_naive(self, prev):
        """
        A loop-based forward pass that skips out-of-range source pixels.
        Returns the layer output volume without modifying the layer.
        """
        W = self.parameters["weights"]
        b = self.parameters["biases"]
        X = self._input_volume(prev)

        Z = conv2D_naive(X, W, self.stride, self.padding, self.out_dims)
        return self.act_fn(Z + b.reshape(-1, 1, 1))

    def _bwd_naive(self, prev):
        """
        A loop-based backward pass mirroring :meth:`_fwd_naive`.

        Returns
        -------
        dX : :py:class:`ndarray <numpy.ndarray>` of shape `(in_ch, in_rows, in_cols)`
            The errors propagated to `prev`.
        dW : :py:class:`ndarray <numpy.ndarray>` of shape `(depth, in_ch, kernel_size, kernel_size)`
            The kernel gradients for the current errors.
        dB : :py:class:`ndarray <numpy.ndarray>` of shape `(depth,)`
            The bias gradients for the current errors.
        """  # noqa: E501
        W = self.parameters["weights"]
        k, s, p = self.kernel_size, self.stride, self.padding
        X = self._input_volume(prev)
        in_rows, in_cols = self.in_dims

        dZ = (self.errors * self.gradients).reshape(self.depth, self.height, self.width)
        dX, dW, dB = np.zeros_like(X), np.zeros_like(W), np.zeros(self.depth)
        for z1 in range(self.depth):
            for y1 in range(self.height):
                y0 = s * y1 - p
                for x1 in range(self.width):
                    x0 = s * x1 - p
                    dnet = dZ[z1, y1, x1]
                    for z0 in range(self.in_ch):
                        for dy in range(k):
                            y = y0 + dy
                            if not 0 <= y < in_rows:
                                continue
                            for dx in range(k):
                                x = x0 + dx
                                if 0 <= x < in_cols:
                                    dX[z0, y, x] += W[z1, z0, dy, dx] * dnet
                                    dW[z1, z0, dy, dx] += dnet * X[z0, y, x]
                    dB[z1] += dnet
        return dX, dW, dB

    def _dump_params(self, fp):
        fstr = "  kernel_size={}, padding={}, stride={}\n"
        fp.write(fstr.format(self.kernel_size, self.padding, self.stride))
        W = self.parameters["weights"]
        b = self.parameters["biases"]
        for z in range(self.depth):
            fstr = "  {}: bias={:.4f}, weights = [{}]\n"
            fp.write(fstr.format(z, b[z], _fmt(W[z].ravel())))


class RecurrentThroughTime(LayerBase):
    def __init__(
        self, prev, n_out, window, std=0.1, act_fn="tanh", init="approx_normal", rng=None
    ):
        r"""
        A vanilla (Elman) recurrent layer trained with truncated
        backpropagation through a fixed window of past timesteps.

        Notes
        -----
        At each forward step the layer computes

        .. math::

            \mathbf{h}^{(t)} = f(\mathbf{b} + \mathbf{W}_x \mathbf{x}^{(t)}
                + \mathbf{W}_h \mathbf{h}^{(t-1)})

        and keeps the last `window` hidden states (and their errors) as a
        ring of snapshots, snapshot 0 being the most recent. Backprop walks
        the ring from the newest snapshot to the oldest, carrying error from
        each step into the step before it through :math:`\mathbf{W}_h`.

        The preceding layer must also keep a history (an
        :class:`Input` created with a window, or another recurrent layer);
        input-to-hidden gradients are only accumulated for timesteps `t` with
        ``t + 1 < prev.window``.

        Parameters
        ----------
        prev : :class:`Input` or :class:`RecurrentThroughTime` instance
            The preceding layer.
        n_out : int
            The dimension of the hidden state.
        window : int
            The number of timesteps retained for backprop.
        std : float
            The standard deviation of the initial weights. Default is 0.1.
        act_fn : str, :doc:`Activation <simplenn.activations>` object, or None
            The hidden state nonlinearity. Default is `'tanh'`.
        init : {'approx_normal', 'std_normal'}
            The weight initialization strategy. Default is `'approx_normal'`.
        rng : :py:class:`Generator <numpy.random.Generator>`, int, or None
            The source of the initial weights. Default is None.
        """  # noqa: E501
        if not isinstance(prev, (Input, RecurrentThroughTime)):
            fstr = "RecurrentThroughTime must follow an Input or RecurrentThroughTime layer, not {}"  # noqa: E501
            raise ValueError(fstr.format(prev.__class__.__name__))

        super().__init__(n_out, 1, 1, window)

        self.std = std
        self.init = init
        self.n_in = prev.nnodes
        self.n_out = n_out
        self.act_fn = ActivationInitializer(act_fn)()
        self._init_params(rng)

    def _init_params(self, rng):
        init_weights = WeightInitializer(self.std, mode=self.init, rng=rng)

        Wx = init_weights((self.n_out, self.n_in))
        Wh = init_weights((self.n_out, self.n_out))
        b = np.zeros(self.n_out)

        self.parameters = {"xweights": Wx, "hweights": Wh, "biases": b}
        self.updates = {k: np.zeros_like(v) for k, v in self.parameters.items()}

    @property
    def hyperparameters(self):
        """Return a dictionary containing the layer hyperparameters."""
        hp = super().hyperparameters
        hp.update(
            {
                "init": self.init,
                "std": self.std,
                "n_in": self.n_in,
                "n_out": self.n_out,
                "act_fn": str(self.act_fn),
            }
        )
        return hp

    def forward(self, prev, last=False):
        """
        Advance the layer one timestep using the current outputs of `prev`.

        Parameters
        ----------
        prev : :class:`LayerBase` instance
            The preceding layer.
        last : bool
            Unused. Default is False.
        """
        Wx = self.parameters["xweights"]
        Wh = self.parameters["hweights"]
        b = self.parameters["biases"]

        H = self.current_outputs.copy()
        self._shift(self.outputs)

        Z = b + Wx @ prev.current_outputs + Wh @ H
        Y = self.act_fn(Z)
        self.current_outputs[:] = Y
        self.gradients[:] = self.act_fn.grad(Y)

    def backward(self, prev):
        """
        Backprop through every retained timestep, newest first, then shift
        the error ring so it lines up with the next forward step.
        """
        Wx = self.parameters["xweights"]
        Wh = self.parameters["hweights"]

        prev.current_errors.fill(0)

        for t in range(self.window):
            Y = self.snapshot(self.outputs, t)
            dZ = self.snapshot(self.errors, t) * self.act_fn.grad(Y)

            if t + 1 < prev.window:
                dX = prev.snapshot(prev.errors, t)
                dX += Wx.T @ dZ
                self.updates["xweights"] += np.outer(dZ, prev.snapshot(prev.outputs, t))

            if t + 1 < self.window:
                dH = self.snapshot(self.errors, t + 1)
                dH += Wh.T @ dZ
                self.updates["hweights"] += np.outer(dZ, self.snapshot(self.outputs, t + 1))

            self.updates["biases"] += dZ

        self._shift(self.errors)
