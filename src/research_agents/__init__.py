"""Cancellable, cacheable task framework and research synthesis pipeline."""

__version__ = "0.1.0"
