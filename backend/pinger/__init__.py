"""Pinger - periodic HTTP endpoint probing."""

__version__ = "1.0.0"
