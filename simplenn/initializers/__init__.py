"""Factories for activation functions and initial weights."""

from .initializers import *
