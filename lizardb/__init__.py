"""Reptile breeding management: terrariums, stock, transactions, security and events."""

__version__ = "1.0.0"

__all__ = ["app", "config", "errors", "security", "stock", "terrarium", "transactions"]