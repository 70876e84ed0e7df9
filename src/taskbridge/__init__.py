"""Bidirectional task synchronisation between a card board and a program task API."""

__version__ = "0.1.0"

__all__ = ["__version__"]
