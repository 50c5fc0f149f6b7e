"""Training drivers for dense, convolutional, and recurrent layer chains."""

from .trainers import *
