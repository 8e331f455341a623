"""chatd: a line-oriented multi-user TCP chat server."""

__version__ = "0.1.0"
