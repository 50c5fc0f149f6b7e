"""Chainable layers: the input head, dense, convolutional, and recurrent kernels."""

from .layers import *
