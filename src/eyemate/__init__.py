"""EyeMate: medication reminder and dose-tracking service."""

__version__ = "0.1.0"
