"""Supervised Binance Pay batch payouts."""

__version__ = "0.1.0"
