"""Acquire Julia package sources by content hash and analyze them."""

__version__ = "0.4.0"
