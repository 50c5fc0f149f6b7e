"""A from-scratch NumPy implementation of chained neural network layers."""

from . import utils
from . import activations
from . import initializers
from . import layers
from . import chain
from . import datasets
from . import trainers
