"""Bouchenator: company evidence pipeline and prototype idea generator."""

__version__ = "0.1.0"
