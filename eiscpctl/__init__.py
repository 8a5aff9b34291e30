"""Onkyo/Pioneer receiver control over eISCP."""

__version__ = "0.1.0"
