"""Condominium payment lifecycle and financial reporting core."""

__version__ = "0.1.0"
