"""Activation functions and their derivatives, expressed via their outputs."""

from .activations import *
