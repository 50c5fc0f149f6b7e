"""
Common helper functions.

The ``simplenn.utils`` module contains the random-number helpers used for
weight initialization and the padding / columnization helpers used by the
convolutional layer.
"""

from . import testing
from .utils import *
