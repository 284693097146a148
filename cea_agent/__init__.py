"""Citizen water-utility conversation router."""

__version__ = "2.0.0"
