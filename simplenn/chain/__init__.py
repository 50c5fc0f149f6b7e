"""The layer chain: construction, forward / backward traversal, and SGD updates."""

from .chain import *
