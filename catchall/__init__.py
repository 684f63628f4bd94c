"""HTTP catch-all capture service."""

__version__ = "0.3.0"
