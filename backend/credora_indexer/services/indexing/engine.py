"""
Indexing Engine

Single-writer consumer of the ordered event stream.

Core guarantees:
1. Events are applied strictly in (block_number, log_index) order.
2. One event = one transaction. All entity writes of an event and the cursor
   advance commit together, or none of them do.
3. Events at or before the cursor were already applied and are skipped, so
   at-least-once delivery becomes exactly-once application.
4. Store failures retry the same event; any other failure aborts the run.
5. One writer per cursor at a time: the cursor row is locked for the
   transaction and only advances from the position this writer read.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional, Tuple

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from ... import config
from ...errors import EventProcessingError, StoreUnavailableError
from ...models.db_models import IndexerCursorDB
from ...models.events import ChainEvent, EventType
from ..store.entity_store import EntityStore
from .daily_stats import DailyStatsAccumulator
from .oracle_handlers import (
    handle_score_update_requested,
    handle_oracle_score_submitted,
    handle_oracle_added,
    handle_oracle_removed,
)
from .permission_handlers import handle_access_granted, handle_access_revoked, handle_access_used
from .score_handlers import handle_score_minted, handle_score_updated, handle_transfer


logger = logging.getLogger(__name__)


Handler = Callable[[ChainEvent, EntityStore, DailyStatsAccumulator], None]

HANDLERS: Dict[EventType, Handler] = {
    EventType.SCORE_MINTED: handle_score_minted,
    EventType.SCORE_UPDATED: handle_score_updated,
    EventType.TRANSFER: handle_transfer,
    EventType.ACCESS_GRANTED: handle_access_granted,
    EventType.ACCESS_REVOKED: handle_access_revoked,
    EventType.ACCESS_USED: handle_access_used,
    EventType.SCORE_UPDATE_REQUESTED: handle_score_update_requested,
    EventType.ORACLE_SCORE_SUBMITTED: handle_oracle_score_submitted,
    EventType.ORACLE_ADDED: handle_oracle_added,
    EventType.ORACLE_REMOVED: handle_oracle_removed,
}


class _CursorMoved(Exception):
    """The cursor row changed under an in-flight event."""


def _is_store_failure(exc: Exception) -> bool:
    """Connection-level failures are retryable; constraint violations are not."""
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


@dataclass
class RunResult:
    """Summary of one engine run."""
    applied: int = 0
    duplicates: int = 0
    last_position: Optional[Tuple[int, int]] = None

    def to_dict(self) -> dict:
        return {
            "applied": self.applied,
            "duplicates": self.duplicates,
            "last_position": list(self.last_position) if self.last_position else None,
        }


class IndexingEngine:
    """
    Applies chain events to the entity store.

    Usage:
        engine = IndexingEngine(db)
        result = engine.run(source)
    """

    DEFAULT_CURSOR = "default"

    def __init__(
        self,
        db: Session,
        cursor_name: str = DEFAULT_CURSOR,
        retry_limit: int = config.STORE_RETRY_LIMIT,
        retry_backoff: float = config.STORE_RETRY_BACKOFF_SECONDS,
        handlers: Optional[Dict[EventType, Handler]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.cursor_name = cursor_name
        self.retry_limit = retry_limit
        self.retry_backoff = retry_backoff
        self.handlers = handlers or HANDLERS
        self.sleep = sleep

    # =========================================================================
    # Cursor
    # =========================================================================

    def cursor_position(self) -> Tuple[int, int]:
        """Position of the last applied event, (-1, -1) before the first one."""
        cursor = self.db.get(IndexerCursorDB, self.cursor_name)
        if cursor is None:
            return (-1, -1)
        return cursor.position

    # =========================================================================
    # Apply
    # =========================================================================

    def apply(self, event: ChainEvent) -> bool:
        """
        Apply one event as a single unit of work.

        Returns:
            True if applied, False if it was already applied (duplicate delivery)

        Raises:
            StoreUnavailableError: store still failing after retry_limit retries
            EventProcessingError: handler failed; nothing of the event was committed
        """
        handler = self.handlers.get(event.event_type)
        if handler is None:
            raise EventProcessingError(
                f"No handler registered for {event.event_type.value}", event.position
            )

        attempt = 0
        while True:
            try:
                applied = self._apply_once(event, handler)
                if applied:
                    self.db.commit()
                else:
                    self.db.rollback()
                return applied
            except _CursorMoved:
                # Another writer committed first; re-check against its cursor
                self.db.rollback()
                logger.warning(
                    f"Cursor moved by another writer while applying {event.position}; re-checking"
                )
                continue
            except Exception as e:
                self.db.rollback()
                if not _is_store_failure(e):
                    logger.error(
                        f"{event.event_type.value} at {event.position} failed: {e}; aborting run"
                    )
                    raise EventProcessingError(
                        f"{event.event_type.value} at {event.position} failed: {e}",
                        event.position,
                    ) from e

                attempt += 1
                if attempt > self.retry_limit:
                    logger.error(
                        f"Entity store unavailable after {self.retry_limit} retries "
                        f"at {event.position}; aborting run"
                    )
                    raise StoreUnavailableError(
                        f"Entity store unavailable while applying {event.position}: {e}",
                        event.position,
                    ) from e

                delay = self.retry_backoff * attempt
                logger.warning(
                    f"Entity store error at {event.position} (attempt {attempt}/{self.retry_limit}), "
                    f"retrying in {delay:.2f}s: {e}"
                )
                self.sleep(delay)

    def _lock_cursor(self, store: EntityStore) -> IndexerCursorDB:
        """Load the cursor row FOR UPDATE so concurrent writers queue behind this transaction."""
        cursor = (
            self.db.query(IndexerCursorDB)
            .filter(IndexerCursorDB.id == self.cursor_name)
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )
        if cursor is None:
            cursor, _ = store.get_or_create(IndexerCursorDB, self.cursor_name)
        return cursor

    def _advance_cursor(self, expected: Tuple[int, int], event: ChainEvent) -> bool:
        """
        Move the cursor from `expected` to the event position.

        Conditional on the cursor still being at `expected`, so a writer that
        lost a race (or a backend without row locks) cannot apply an event twice.
        """
        moved = (
            self.db.query(IndexerCursorDB)
            .filter(
                IndexerCursorDB.id == self.cursor_name,
                IndexerCursorDB.block_number == expected[0],
                IndexerCursorDB.log_index == expected[1],
            )
            .update(
                {
                    IndexerCursorDB.block_number: event.block_number,
                    IndexerCursorDB.log_index: event.log_index,
                    IndexerCursorDB.events_applied: IndexerCursorDB.events_applied + 1,
                    IndexerCursorDB.updated_at: datetime.utcnow(),
                },
                synchronize_session=False,
            )
        )
        return moved == 1

    def _apply_once(self, event: ChainEvent, handler: Handler) -> bool:
        store = EntityStore(self.db)
        cursor = self._lock_cursor(store)

        if event.position <= cursor.position:
            if event.position < cursor.position:
                logger.warning(
                    f"{event.event_type.value} at {event.position} is behind cursor "
                    f"{cursor.position}; treating as already applied"
                )
            else:
                logger.debug(f"Duplicate delivery of {event.position}; skipping")
            return False

        expected = cursor.position
        handler(event, store, DailyStatsAccumulator(store))

        if not self._advance_cursor(expected, event):
            raise _CursorMoved(event.position)
        return True

    # =========================================================================
    # Run
    # =========================================================================

    def run(self, source: Iterable[ChainEvent]) -> RunResult:
        """Apply every event from the source, in order, until it is exhausted."""
        result = RunResult()
        for event in source:
            if self.apply(event):
                result.applied += 1
            else:
                result.duplicates += 1
            result.last_position = event.position

        logger.info(
            f"Indexing run finished: {result.applied} applied, "
            f"{result.duplicates} duplicate(s), last position {result.last_position}"
        )
        return result
