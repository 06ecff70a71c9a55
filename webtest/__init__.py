"""Batched concurrent HTTP load generator."""

__version__ = "0.1.0"
