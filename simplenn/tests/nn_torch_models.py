# flake8: noqa

import torch
import torch.nn as nn

import numpy as np

#######################################################################
#       Gold-standard implementations for testing custom layers       #
#                       (Requires Pytorch)                            #
#######################################################################


def torchify(var, requires_grad=True):
    return torch.tensor(np.asarray(var, dtype=np.float64), requires_grad=requires_grad)


def torch_gradient_generator(fn, **kwargs):
    def get_grad(z):
        z1 = torchify(z)
        z2 = fn(z1, **kwargs).sum()
        z2.backward()
        grad = z1.grad.numpy()
        return grad

    return get_grad


class TorchFCLayer(nn.Module):
    def __init__(self, n_in, n_hid, act_fn, params, **kwargs):
        super(TorchFCLayer, self).__init__()
        self.layer1 = nn.Linear(n_in, n_hid).double()

        # weights are (n_out, n_in) on both sides
        W = params["weights"]
        b = params["biases"]

        self.layer1.weight = nn.Parameter(torch.DoubleTensor(W))
        self.layer1.bias = nn.Parameter(torch.DoubleTensor(b))

        self.act_fn = act_fn
        self.model = nn.Sequential(self.layer1, self.act_fn)

    def forward(self, X):
        self.X = X
        if not isinstance(X, torch.Tensor):
            self.X = torchify(X)

        self.z1 = self.layer1(self.X)
        self.z1.retain_grad()

        self.out1 = self.act_fn(self.z1)
        self.out1.retain_grad()

    def extract_grads(self, X, errors):
        """
        Backprop the upstream `errors` (dLoss/dY) through the layer and
        return the resulting gradients.
        """
        self.forward(X)
        self.loss1 = (self.out1 * torchify(errors, False)).sum()
        self.loss1.backward()
        grads = {
            "X": self.X.detach().numpy(),
            "b": self.layer1.bias.detach().numpy(),
            "W": self.layer1.weight.detach().numpy(),
            "y": self.out1.detach().numpy(),
            "dLdy": self.out1.grad.numpy(),
            "dLdZ": self.z1.grad.numpy(),
            "dLdB": self.layer1.bias.grad.numpy(),
            "dLdW": self.layer1.weight.grad.numpy(),
            "dLdX": self.X.grad.numpy(),
        }
        return grads


class TorchConv2DLayer(nn.Module):
    def __init__(self, in_channels, out_channels, act_fn, params, hparams, **kwargs):
        super(TorchConv2DLayer, self).__init__()

        W = params["weights"]
        b = params["biases"]
        self.act_fn = act_fn

        self.layer1 = nn.Conv2d(
            in_channels,
            out_channels,
            hparams["kernel_size"],
            padding=hparams["padding"],
            stride=hparams["stride"],
            bias=True,
        ).double()

        # kernels are (out_ch, in_ch, k, k) on both sides
        assert self.layer1.weight.shape == W.shape
        assert self.layer1.bias.shape == b.shape

        self.layer1.weight = nn.Parameter(torch.DoubleTensor(W))
        self.layer1.bias = nn.Parameter(torch.DoubleTensor(b))

    def forward(self, X):
        # (C, H, W) -> (1, C, H, W)
        self.X = torchify(X[np.newaxis])
        self.X.retain_grad()

        self.Z = self.layer1(self.X)
        self.Z.retain_grad()

        self.Y = self.act_fn(self.Z)
        self.Y.retain_grad()
        return self.Y

    def extract_grads(self, X, errors):
        """
        Backprop the upstream `errors` (dLoss/dY, shaped like the output
        volume) through the layer and return the resulting gradients.
        """
        self.forward(X)
        self.loss = (self.Y * torchify(errors[np.newaxis], False)).sum()
        self.loss.backward()

        grads = {
            "X": self.X.detach().numpy()[0],
            "W": self.layer1.weight.detach().numpy(),
            "b": self.layer1.bias.detach().numpy(),
            "y": self.Y.detach().numpy()[0],
            "dLdY": self.Y.grad.numpy()[0],
            "dLdZ": self.Z.grad.numpy()[0],
            "dLdW": self.layer1.weight.grad.numpy(),
            "dLdB": self.layer1.bias.grad.numpy(),
            "dLdX": self.X.grad.numpy()[0],
        }
        return grads


class TorchRNNCell(nn.Module):
    def __init__(self, n_in, n_hid, params, **kwargs):
        super(TorchRNNCell, self).__init__()

        self.layer1 = nn.RNNCell(n_in, n_hid, bias=True, nonlinearity="tanh").double()

        # our recurrent layer has a single bias; torch's second bias stays zero
        self.layer1.weight_ih = nn.Parameter(torch.DoubleTensor(params["xweights"]))
        self.layer1.weight_hh = nn.Parameter(torch.DoubleTensor(params["hweights"]))
        self.layer1.bias_ih = nn.Parameter(torch.DoubleTensor(params["biases"]))
        self.layer1.bias_hh = nn.Parameter(torch.zeros(n_hid, dtype=torch.float64))

    def forward(self, X):
        """Unroll the cell over the rows of `X`, starting from a zero state."""
        self.X = X
        if not isinstance(self.X, torch.Tensor):
            self.X = torchify(self.X)

        self.A = []
        at = torch.zeros(1, self.layer1.hidden_size, dtype=torch.float64)
        for t in range(self.X.shape[0]):
            at = self.layer1(self.X[t : t + 1], at)
            at.retain_grad()
            self.A.append(at)
        return self.A

    def extract_grads(self, X, target):
        """
        Return gradients of ``0.5 * sum((h_T - target) ** 2)``, where `h_T`
        is the hidden state after the final row of `X`.
        """
        self.forward(X)
        diff = self.A[-1][0] - torchify(target, False)
        self.loss = 0.5 * (diff * diff).sum()
        self.loss.backward()
        grads = {
            "X": self.X.detach().numpy(),
            "h": np.vstack([a.detach().numpy() for a in self.A]),
            "dLdX": self.X.grad.numpy(),
            "dLdWx": self.layer1.weight_ih.grad.numpy(),
            "dLdWh": self.layer1.weight_hh.grad.numpy(),
            "dLdB": self.layer1.bias_ih.grad.numpy(),
        }
        return grads
