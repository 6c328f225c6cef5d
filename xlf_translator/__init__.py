"""Batch machine translation of XLIFF catalogues."""

__version__ = "1.0.0"
