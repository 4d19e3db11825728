"""Event sources feeding the indexing engine."""
from .base import EventSource, InMemoryEventSource, canonical_order
from .web3_source import Web3EventSource

__all__ = ["EventSource", "InMemoryEventSource", "canonical_order", "Web3EventSource"]
