"""Excel -> typed record artifact converter."""

__version__ = "0.1.0"
