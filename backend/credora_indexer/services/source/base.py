"""
Event sources.

A source yields ChainEvents in non-decreasing (block_number, log_index)
order. It may deliver an event more than once; it must never skip or
reorder. If it cannot produce the next event it blocks.
"""
from typing import Iterable, Iterator, List, Protocol

from ...errors import InvalidEventError
from ...models.events import ChainEvent


class EventSource(Protocol):
    def __iter__(self) -> Iterator[ChainEvent]:
        ...


def canonical_order(events: Iterable[ChainEvent]) -> List[ChainEvent]:
    """Sort by (block_number, log_index); stable for duplicate deliveries."""
    return sorted(events, key=lambda e: e.position)


class InMemoryEventSource:
    """
    Finite, already-decoded event stream.

    Used for replays, the ingest API and tests. Events are put in canonical
    order up front; with strict=True an out-of-order input is rejected instead.
    """

    def __init__(self, events: Iterable[ChainEvent], strict: bool = False):
        events = list(events)
        if strict:
            for prev, cur in zip(events, events[1:]):
                if cur.position < prev.position:
                    raise InvalidEventError(
                        f"Event at {cur.position} delivered after {prev.position}"
                    )
        self.events = canonical_order(events)

    def __iter__(self) -> Iterator[ChainEvent]:
        return iter(self.events)

    def __len__(self) -> int:
        return len(self.events)

    @classmethod
    def from_dicts(cls, payloads: Iterable[dict], strict: bool = False) -> "InMemoryEventSource":
        return cls((ChainEvent.from_dict(p) for p in payloads), strict=strict)
