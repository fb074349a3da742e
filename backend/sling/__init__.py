"""Sling: wager settlement and balance ledger for community prediction markets."""

__version__ = "0.1.0"
__author__ = "Sling Team"

__all__ = ["__version__", "__author__"]
