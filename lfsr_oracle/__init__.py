"""Bit-oracle extraction and tap recovery for a LFSR keystream generator."""

__version__ = "0.1.0"
