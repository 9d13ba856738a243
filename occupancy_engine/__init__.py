"""Occupancy model search, multi-model averaging and detection sensitivity."""

__version__ = "0.1.0"
