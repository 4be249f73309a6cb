"""Periscope: mempool MEV opportunity detection service."""

__version__ = "0.1.0"
