"""Famwish charity-auction bid service."""

__version__ = "1.0.0"
