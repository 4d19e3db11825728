"""
Score Oracle Handlers

ScoreUpdateRequested, oracle score submissions, OracleAdded and OracleRemoved.
"""
import logging

from ...models.db_models import OracleDB, ScoreRequestDB, ScoreRequestStatus
from ...models.events import ChainEvent
from ..store.entity_store import EntityStore
from .daily_stats import DailyStatsAccumulator


logger = logging.getLogger(__name__)


def handle_score_update_requested(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    params = event.params

    _, created = store.append(
        ScoreRequestDB,
        str(params.request_id),
        user=params.user,
        requested_at=event.timestamp,
        status=ScoreRequestStatus.PENDING,
        request_tx=event.transaction_hash,
    )
    if not created:
        logger.warning(f"Score request {params.request_id} already recorded at {event.position}")


def handle_oracle_score_submitted(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    """
    Count the submission against the oracle and close the user's open requests.

    Every PENDING request of that user raised at or before this block is
    considered answered by the submission.
    """
    params = event.params

    oracle, _ = store.get_or_create(OracleDB, params.oracle)
    oracle.updates_submitted += 1
    store.save(oracle)

    pending = (
        store.db.query(ScoreRequestDB)
        .filter(
            ScoreRequestDB.user == params.user,
            ScoreRequestDB.status == ScoreRequestStatus.PENDING,
            ScoreRequestDB.requested_at <= event.timestamp,
        )
        .all()
    )
    for request in pending:
        request.status = ScoreRequestStatus.FULFILLED
        request.fulfilled_at = event.timestamp
        request.fulfilled_by = params.oracle
        store.save(request)

    if pending:
        logger.info(f"Oracle {params.oracle} fulfilled {len(pending)} request(s) for {params.user}")


def handle_oracle_added(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    oracle, _ = store.get_or_create(OracleDB, event.params.oracle)
    oracle.is_active = True
    oracle.added_at = event.timestamp
    store.save(oracle)


def handle_oracle_removed(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    oracle, _ = store.get_or_create(OracleDB, event.params.oracle)
    oracle.is_active = False
    store.save(oracle)
