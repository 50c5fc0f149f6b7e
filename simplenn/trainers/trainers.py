import os
from abc import ABC, abstractmethod
from time import time

import numpy as np

from ..chain import LayerChain
from ..datasets import load_idx
from ..utils import calc_conv_out_dims, get_rng


class TrainerBase(ABC):
    def __init__(self, seed=None):
        """
        An object to facilitate building, training, and evaluating a
        :class:`~simplenn.chain.LayerChain`.

        Parameters
        ----------
        seed : int or None
            Seed for the generator that initializes the network weights and
            draws the training samples. Default is None.
        """
        self.seed = seed
        self.rng = get_rng(seed)
        self.chain = None
        self.errors = {"step": [], "error": []}
        super().__init__()

    @abstractmethod
    def build(self):
        """Construct and return the layer chain"""
        raise NotImplementedError

    @abstractmethod
    def train(self, verbose=True):
        raise NotImplementedError

    @property
    def hyperparameters(self):
        raise NotImplementedError

    def _record(self, step, error):
        self.errors["step"].append(step)
        self.errors["error"].append(error)

    def plot_error(self, fname=None):
        """
        Plot the recorded training error as a function of training step.

        Notes
        -----
        Saves plot to the file ``./img/<trainer>.png`` unless `fname` is
        given.

        Parameters
        ----------
        fname : str or None
            The path to save the plot to. Default is None.
        """
        try:
            import matplotlib.pyplot as plt
            import seaborn as sns

            sns.set_style("white")
            sns.set_context("notebook", font_scale=1)
        except ImportError:
            fstr = "Error importing `matplotlib` and `seaborn` -- plotting functionality is disabled"
            raise ImportError(fstr)

        name = self.hyperparameters["trainer"]
        if fname is None:
            os.makedirs("img", exist_ok=True)
            fname = "img/{}.png".format(name)

        fig, ax = plt.subplots()
        ax.plot(self.errors["step"], self.errors["error"], label="training error")
        ax.legend()
        sns.despine()

        ax.set_xlabel("Step")
        ax.set_ylabel("Mean squared error")
        ax.set_title(name)
        plt.savefig(fname)
        plt.close("all")
        return fname


class DenseTrainer(TrainerBase):
    def __init__(self, n_hidden=3, rate=1.0, std=0.1, seed=0, fn=None):
        """
        Train a 2-`n_hidden`-1 sigmoid network to approximate a function of
        two variables on the unit square.

        Parameters
        ----------
        n_hidden : int
            The number of hidden units. Default is 3.
        rate : float
            The SGD learning rate. The network is updated after every sample.
            Default is 1.0.
        std : float
            The standard deviation of the initial weights. Default is 0.1.
        seed : int or None
            Seed for the weights and the training samples. Default is 0.
        fn : callable or None
            The target function ``fn(a, b) -> float``. If None, use
            ``|a - b|``. Default is None.
        """
        super().__init__(seed)
        self.std = std
        self.rate = rate
        self.n_hidden = n_hidden
        self.fn = (lambda a, b: abs(a - b)) if fn is None else fn
        self.chain = self.build()

    @property
    def hyperparameters(self):
        return {
            "trainer": "DenseTrainer",
            "seed": self.seed,
            "std": self.std,
            "rate": self.rate,
            "n_hidden": self.n_hidden,
            "chain": self.chain.hyperparameters,
        }

    def build(self):
        chain = LayerChain(seed=self.rng)
        chain.add_input(2)
        chain.add_full(self.n_hidden, std=self.std, act_fn="sigmoid")
        chain.add_full(1, std=self.std, act_fn="sigmoid")
        return chain

    def step(self, x):
        """Run one forward / backward / update cycle on the point `x`."""
        chain = self.chain
        chain.set_inputs(x)
        y = chain.get_outputs()
        chain.learn_outputs([self.fn(x[0], x[1])])
        err = chain.error_total()
        chain.update(self.rate)
        return y, err

    def train(self, n_steps=10000, report_every=1000, verbose=True):
        """
        Train the network on `n_steps` points drawn uniformly from the unit
        square.

        Parameters
        ----------
        n_steps : int
            The number of single-sample updates. Default is 10000.
        report_every : int
            The number of steps per logged mean error. Default is 1000.
        verbose : bool
            Whether to print the mean error of every reporting interval
            and a dump of the chain before and after training. Default is
            True.

        Returns
        -------
        errors : list of float
            The per-step error totals.
        """
        if verbose:
            self.chain.dump()

        t0 = time()
        errors = []
        for i in range(n_steps):
            x = self.rng.random(2)
            _, err = self.step(x)
            errors.append(err)

            if (i + 1) % report_every == 0:
                mean_err = np.mean(errors[-report_every:])
                self._record(i + 1, mean_err)
                if verbose:
                    print("[Step {}] Mean error: {:.4f}".format(i + 1, mean_err))

        if verbose:
            fstr = "Training took {:.2f}s [{:.2f}ms/step]"
            dt = time() - t0
            print(fstr.format(dt, 1000 * dt / max(n_steps, 1)))
            self.chain.dump()
        return errors

    def evaluate(self, n_grid=11):
        """
        Return the mean error total of the network over an `n_grid` x
        `n_grid` lattice on the unit square. Does not modify the weights.
        """
        chain = self.chain
        grid = np.linspace(0, 1, n_grid)
        total = 0.0
        for a in grid:
            for b in grid:
                chain.set_inputs([a, b])
                y = chain.get_outputs()[0]
                total += (y - self.fn(a, b)) ** 2
        return total / n_grid ** 2


class MNISTTrainer(TrainerBase):
    def __init__(
        self,
        conv_depths=(16, 32),
        hidden=(200, 200),
        n_classes=10,
        kernel_size=3,
        padding=1,
        stride=2,
        std=0.1,
        rate=0.1,
        batch_size=32,
        seed=0,
    ):
        """
        Train a convolutional classifier on IDX-encoded image / label files
        such as MNIST.

        Notes
        -----
        The network architecture is

        .. code-block:: text

            Input -> Conv1 -> Conv2 -> ... -> FC1 -> FC2 -> ... -> Softmax

        Each convolution uses ReLU units and shrinks the spatial size
        according to `kernel_size`, `padding` and `stride` (16x14x14 then
        32x7x7 for 28x28 images with the defaults). The hidden dense layers
        use tanh units. The input shape is read from the image file, so the
        chain is built on the first call to :meth:`train`.

        Parameters
        ----------
        conv_depths : tuple of int
            The number of kernels in each convolutional layer. Default is
            (16, 32).
        hidden : tuple of int
            The number of units in each hidden dense layer. Default is
            (200, 200).
        n_classes : int
            The number of output classes. Default is 10.
        kernel_size : int
            The side length of every convolution kernel. Default is 3.
        padding : int
            The padding of every convolution. Default is 1.
        stride : int
            The stride of every convolution. Default is 2.
        std : float
            The standard deviation of the initial weights. Default is 0.1.
        rate : float
            The SGD learning rate, divided by `batch_size` at each update.
            Default is 0.1.
        batch_size : int
            The number of samples between updates. Default is 32.
        seed : int or None
            Seed for the weights and the training samples. Default is 0.
        """
        super().__init__(seed)
        self.std = std
        self.rate = rate
        self.stride = stride
        self.hidden = tuple(hidden)
        self.padding = padding
        self.n_classes = n_classes
        self.batch_size = batch_size
        self.kernel_size = kernel_size
        self.conv_depths = tuple(conv_depths)
        self.in_dims = None

    @property
    def hyperparameters(self):
        return {
            "trainer": "MNISTTrainer",
            "seed": self.seed,
            "std": self.std,
            "rate": self.rate,
            "stride": self.stride,
            "hidden": self.hidden,
            "padding": self.padding,
            "in_dims": self.in_dims,
            "n_classes": self.n_classes,
            "batch_size": self.batch_size,
            "kernel_size": self.kernel_size,
            "conv_depths": self.conv_depths,
            "chain": None if self.chain is None else self.chain.hyperparameters,
        }

    def build(self, in_dims=(28, 28)):
        """Construct the chain for single-channel images of size `in_dims`."""
        self.in_dims = tuple(in_dims)
        k, p, s = self.kernel_size, self.padding, self.stride

        chain = LayerChain(seed=self.rng)
        chain.add_input(1, self.in_dims[1], self.in_dims[0])

        dims = self.in_dims
        for depth in self.conv_depths:
            dims = calc_conv_out_dims(dims, k, s, p)
            chain.add_conv(depth, dims[1], dims[0], k, padding=p, stride=s, std=self.std)

        for n_units in self.hidden:
            chain.add_full(n_units, std=self.std)
        chain.add_full(self.n_classes, std=self.std)

        self.chain = chain
        return chain

    def _load(self, images_path, labels_path):
        images = load_idx(images_path)
        if images is None:
            raise IOError("Unable to load images from {}".format(images_path))
        labels = load_idx(labels_path)
        if labels is None:
            raise IOError("Unable to load labels from {}".format(labels_path))
        if len(images) != len(labels):
            fstr = "Image / label count mismatch: {} vs. {}"
            raise ValueError(fstr.format(len(images), len(labels)))
        return images, labels

    def train(self, images_path, labels_path, n_epochs=10, report_every=1000, verbose=True):
        """
        Train the network on randomly drawn samples from an IDX image file
        and its label file.

        Parameters
        ----------
        images_path : str
            Path to the 3-D IDX image file.
        labels_path : str
            Path to the 1-D IDX label file.
        n_epochs : int
            Total steps are ``n_epochs`` times the number of images. Default
            is 10.
        report_every : int
            The number of steps per logged mean error. Default is 1000.
        verbose : bool
            Whether to print the mean error of every reporting interval
            Default is True.
        """
        images, labels = self._load(images_path, labels_path)
        if self.chain is None:
            self.build(images.dims[1:])

        chain = self.chain
        n_train = len(images)
        t0, etotal = time(), 0.0
        for i in range(n_epochs * n_train):
            ix = self.rng.integers(n_train)
            chain.set_inputs(images.get3(ix) / 255.0)
            chain.learn_outputs(self._one_hot(labels.get1(ix)))
            etotal += chain.error_total()

            if i % self.batch_size == 0:
                chain.update(self.rate / self.batch_size)

            if i % report_every == 0:
                self._record(i, etotal / report_every)
                if verbose:
                    print("[Step {}] Error: {:.4f}".format(i, etotal / report_every))
                etotal = 0.0

        if verbose:
            print("Training took {:.2f} mins".format((time() - t0) / 60))

    def _one_hot(self, label):
        y = np.zeros(self.n_classes)
        y[label] = 1
        return y

    def predict(self, image):
        """Return the most probable class for the flat uint8 `image`."""
        self.chain.set_inputs(np.asarray(image) / 255.0)
        return int(np.argmax(self.chain.get_outputs()))

    def test(self, images_path, labels_path, verbose=True):
        """
        Return the classification accuracy of the network on every record of
        an IDX image / label file pair.
        """
        if self.chain is None:
            raise ValueError("The network must be trained before it is tested")

        images, labels = self._load(images_path, labels_path)
        n_correct = sum(
            self.predict(images.get3(i)) == labels.get1(i) for i in range(len(images))
        )
        accuracy = n_correct / max(len(images), 1)
        if verbose:
            fstr = "Accuracy: {}/{} ({:.2f}%)"
            print(fstr.format(n_correct, len(images), 100 * accuracy))
        return accuracy


class SequenceTrainer(TrainerBase):
    def __init__(
        self,
        pattern=(5, 9, 4, 0, 5, 9, 6, 3),
        target_pos=4,
        n_symbols=10,
        n_hidden=3,
        window=5,
        rate=0.005,
        std=0.1,
        seed=0,
    ):
        """
        Train a two-layer recurrent network to flag a position in a
        repeating symbol sequence.

        Notes
        -----
        At step `i` the input is the one-hot encoding of
        ``pattern[i % len(pattern)]`` and the target is 1 if
        ``i % len(pattern) == target_pos`` and 0 otherwise. Since the pattern
        contains repeated symbols, the target is only predictable from the
        recent history, which the network must carry in its hidden state.

        Parameters
        ----------
        pattern : tuple of int
            The repeating sequence of symbols. Default is
            (5, 9, 4, 0, 5, 9, 6, 3).
        target_pos : int
            The position in `pattern` flagged with target 1. Default is 4.
        n_symbols : int
            The size of the one-hot input. Default is 10.
        n_hidden : int
            The number of hidden recurrent units. Default is 3.
        window : int
            The truncated backprop window of every layer. Default is 5.
        rate : float
            The SGD learning rate, applied once per sequence. Default is
            0.005.
        std : float
            The standard deviation of the initial weights. Default is 0.1.
        seed : int or None
            Seed for the weights and the sequence offsets. Default is 0.
        """
        super().__init__(seed)
        self.std = std
        self.rate = rate
        self.window = window
        self.pattern = tuple(pattern)
        self.n_hidden = n_hidden
        self.n_symbols = n_symbols
        self.target_pos = target_pos
        self.chain = self.build()

    @property
    def hyperparameters(self):
        return {
            "trainer": "SequenceTrainer",
            "seed": self.seed,
            "std": self.std,
            "rate": self.rate,
            "window": self.window,
            "pattern": self.pattern,
            "n_hidden": self.n_hidden,
            "n_symbols": self.n_symbols,
            "target_pos": self.target_pos,
            "chain": self.chain.hyperparameters,
        }

    def build(self):
        chain = LayerChain(seed=self.rng)
        chain.add_input(self.n_symbols, window=self.window)
        chain.add_recurrent(self.n_hidden, self.window, std=self.std)
        chain.add_recurrent(1, self.window, std=self.std)
        return chain

    def symbol(self, i):
        return self.pattern[i % len(self.pattern)]

    def target(self, i):
        return 1.0 if i % len(self.pattern) == self.target_pos else 0.0

    def encode(self, i):
        x = np.zeros(self.n_symbols)
        x[self.symbol(i)] = 1
        return x

    def train(self, n_sequences=100, seq_len=100, verbose=True):
        """
        Train on `n_sequences` sequences of `seq_len` steps, each starting at
        a random offset, with one update per sequence.

        Returns
        -------
        errors : list of float
            The mean error total of each sequence.
        """
        chain = self.chain
        if verbose:
            chain.dump()

        t0, errors = time(), []
        for n in range(n_sequences):
            i = int(self.rng.integers(10000))
            chain.reset()

            etotal = 0.0
            for _ in range(seq_len):
                chain.set_inputs(self.encode(i))
                chain.learn_outputs([self.target(i)])
                etotal += chain.error_total()
                i += 1
            chain.update(self.rate)

            errors.append(etotal / seq_len)
            self._record(n, errors[-1])
            if verbose:
                print("[Step {}] Mean error: {:.4f}".format(n, errors[-1]))

        if verbose:
            print("Training took {:.2f}s".format(time() - t0))
            chain.dump()
        return errors

    def predict(self, n_steps=20):
        """
        Run the network from a reset state over the first `n_steps` symbols
        and return the predicted and target values at each step.
        """
        chain = self.chain
        chain.reset()

        preds, targets = [], []
        for i in range(n_steps):
            chain.set_inputs(self.encode(i))
            preds.append(chain.get_outputs()[0])
            targets.append(self.target(i))
        return np.array(preds), np.array(targets)
