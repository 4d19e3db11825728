"""Credora Indexer - derived state over Credora protocol events."""

__version__ = "1.0.0"
