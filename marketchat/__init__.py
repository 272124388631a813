"""Buyer/seller messaging and presence for the marketplace."""

__version__ = "0.1.0"
