"""Unit tests for simplenn."""
