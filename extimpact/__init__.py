"""Measure the performance and network impact of a browser extension."""

__version__ = "0.1.0"
