"""Threshold signature finalization for Ethereum messages and transactions."""

__version__ = "0.1.0"
