"""Grocery commerce core: cart pricing, checkout validation and order placement."""

__version__ = "0.1.0"
