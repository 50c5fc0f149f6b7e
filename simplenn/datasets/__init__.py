"""Dataset readers."""

from .idx import *
