"""Simulated-trading ledger: virtual cash, weighted-average positions and P&L analytics."""

__version__ = "0.1.0"
