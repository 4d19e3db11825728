"""
Indexer error taxonomy.

Missing referents (e.g. a score update for an unminted token) are NOT errors:
handlers log a warning and no-op. Everything here either rejects bad input
before it reaches the engine or aborts the run.
"""
from typing import Optional, Tuple


class IndexerError(Exception):
    """Base class for indexer errors."""


class InvalidEventError(IndexerError, ValueError):
    """Raised when an inbound event cannot be parsed into a ChainEvent."""


class InvalidAddressError(IndexerError, ValueError):
    """Raised when a value is not a 20-byte hex address."""


class EventProcessingError(IndexerError):
    """A handler failed. The event's writes were rolled back and the run aborted."""

    def __init__(self, message: str, position: Optional[Tuple[int, int]] = None):
        super().__init__(message)
        self.position = position


class StoreUnavailableError(EventProcessingError):
    """The entity store stayed unreachable after every retry of one event."""
