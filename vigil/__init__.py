"""Vigil — presence sensor hub."""

__version__ = "0.3.0"
