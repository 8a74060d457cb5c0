"""Batch and watch-mode image transformation driven by declarative profiles."""

__version__ = "0.1.0"
