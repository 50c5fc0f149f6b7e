import sys
import warnings

import numpy as np

from ..utils import get_rng
from ..layers import Input, FullyConnected, Conv2D, RecurrentThroughTime


class LayerChain(object):
    def __init__(self, seed=None):
        """
        An ordered, linear chain of layers, from a single :class:`Input` head
        to a tail layer whose outputs are the network predictions.

        Notes
        -----
        Layers are addressed by position: the head has ``lid = 0`` and every
        ``add_*`` call appends a new tail, fed by the previous tail. A forward
        pass walks the chain head to tail and a backward pass walks it tail to
        head, so layers never hold references to their neighbors.

        A typical training step is::

            chain.set_inputs(x)
            y = chain.get_outputs()
            chain.learn_outputs(target)
            chain.update(rate)

        Gradients are summed in each layer between calls to :meth:`update`, so
        calling it every `n` steps with ``rate / n`` gives minibatch SGD.

        Parameters
        ----------
        seed : int, :py:class:`Generator <numpy.random.Generator>`, or None
            The source of the initial weights for every layer added to the
            chain. Default is None.
        """
        self.rng = get_rng(seed)
        self.layers = []

    def __len__(self):
        return len(self.layers)

    def __getitem__(self, lid):
        return self.layers[lid]

    def __iter__(self):
        return iter(self.layers)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    @property
    def head(self):
        self._check_built()
        return self.layers[0]

    @property
    def tail(self):
        self._check_built()
        return self.layers[-1]

    @property
    def hyperparameters(self):
        return {
            "layer": "LayerChain",
            "n_layers": len(self.layers),
            "components": [layer.hyperparameters for layer in self.layers],
        }

    def summary(self):
        """Return a list of per-layer summary dicts, head first."""
        return [layer.summary() for layer in self.layers]

    def _check_built(self):
        if not self.layers:
            raise ValueError("The chain is empty: call `add_input` first")

    def _append(self, layer):
        layer.lid = len(self.layers)
        self.layers.append(layer)
        return layer

    #######################################################################
    #                            Construction                             #
    #######################################################################

    def add_input(self, depth, width=1, height=1, window=1):
        """
        Create the head of the chain.

        Parameters
        ----------
        depth, width, height : int
            The shape of each input. Flat inputs only need `depth`.
        window : int
            The number of past inputs retained. A chain with recurrent layers
            needs ``window`` at least as large as theirs for their input
            weights to be trained through time. Default is 1.

        Returns
        -------
        layer : :class:`~simplenn.layers.Input` instance
        """
        if self.layers:
            raise ValueError("The chain already has an input layer")
        return self._append(Input(depth, width, height, window))

    def add_full(self, n_out, std=0.1, act_fn=None, init="approx_normal"):
        """
        Append a :class:`~simplenn.layers.FullyConnected` layer with `n_out`
        units. If `act_fn` is None the layer uses tanh, or softmax while it is
        the tail of the chain.
        """
        prev = self.tail
        layer = FullyConnected(prev, n_out, std=std, act_fn=act_fn, init=init, rng=self.rng)
        return self._append(layer)

    def add_conv(
        self,
        depth,
        width,
        height,
        kernel_size,
        padding=0,
        stride=1,
        std=0.1,
        act_fn="relu",
        init="approx_normal",
    ):
        """
        Append a :class:`~simplenn.layers.Conv2D` layer producing a
        `(depth, width, height)` volume from the current tail.
        """
        layer = Conv2D(
            self.tail,
            depth,
            width,
            height,
            kernel_size,
            padding=padding,
            stride=stride,
            std=std,
            act_fn=act_fn,
            init=init,
            rng=self.rng,
        )
        return self._append(layer)

    def add_recurrent(self, n_out, window, std=0.1, act_fn="tanh", init="approx_normal"):
        """
        Append a :class:`~simplenn.layers.RecurrentThroughTime` layer with
        `n_out` hidden units, trained through the last `window` timesteps.

        The current tail must retain at least two timesteps for the input
        weights to receive gradients; a warning is issued otherwise.
        """
        prev = self.tail
        layer = RecurrentThroughTime(
            prev, n_out, window, std=std, act_fn=act_fn, init=init, rng=self.rng
        )
        if prev.window <= 1:
            fstr = (
                "Layer{} retains a single timestep, so the input weights of the "
                "recurrent layer will never be trained; give it a window >= {}"
            )
            warnings.warn(fstr.format(prev.lid, window + 1))
        return self._append(layer)

    #######################################################################
    #                            Training Loop                            #
    #######################################################################

    def set_inputs(self, values):
        """
        Feed one input sample to the head and run the forward pass through
        every layer of the chain.

        Parameters
        ----------
        values : array-like of length ``head.nnodes``
            The input sample. Volumes are read in `(depth, row, col)` order.
        """
        head = self.head
        head.forward(values)

        last = len(self.layers) - 1
        for lid in range(1, len(self.layers)):
            self.layers[lid].forward(self.layers[lid - 1], last=lid == last)

    def get_outputs(self, lid=-1):
        """Return a copy of the current outputs of layer `lid` (the tail by default)."""
        self._check_built()
        return self.layers[lid].current_outputs.copy()

    def learn_outputs(self, targets):
        """
        Set the tail errors to ``outputs - targets`` and backpropagate them
        through the chain, accumulating gradients in every layer.

        Parameters
        ----------
        targets : array-like of length ``tail.nnodes``
            The desired outputs for the most recent input.
        """
        tail = self.tail
        targets = np.asarray(targets, dtype=float).ravel()
        if targets.size != tail.nnodes:
            fstr = "Expected {} target values, but got {}"
            raise ValueError(fstr.format(tail.nnodes, targets.size))

        tail.current_errors[:] = tail.current_outputs - targets
        for lid in range(len(self.layers) - 1, 0, -1):
            self.layers[lid].backward(self.layers[lid - 1])

    def update(self, rate, lid=-1):
        """
        Apply the accumulated gradients of layer `lid` and every layer before
        it with learning rate `rate`, then zero the accumulators.
        """
        self._check_built()
        n_layers = len(self.layers)
        if not -n_layers <= lid < n_layers:
            fstr = "Layer {} out of range for a chain of {} layers"
            raise ValueError(fstr.format(lid, n_layers))

        idx = lid % n_layers
        for layer in reversed(self.layers[: idx + 1]):
            layer.update(rate)

    def error_total(self, lid=-1):
        """Return the mean squared error of the current errors of layer `lid`."""
        self._check_built()
        return self.layers[lid].error_total()

    def reset(self):
        """Zero the current outputs of every layer, clearing recurrent state."""
        for layer in self.layers:
            layer.reset()

    #######################################################################
    #                              Teardown                               #
    #######################################################################

    def dump(self, fp=None):
        """Write every layer, head first, to the file object `fp` (default: stdout)."""
        fp = sys.stdout if fp is None else fp
        for layer in self.layers:
            layer.dump(fp)

    def close(self):
        """Release the buffers of every layer and empty the chain."""
        for layer in reversed(self.layers):
            layer.release()
        self.layers = []
