"""
Score SBT Handlers

ScoreMinted, ScoreUpdated and Transfer (burn) transitions.
CreditScore and ScoreUpdate rows are history: a burn never erases them.
"""
import logging

from ...models.db_models import UserDB, CreditScoreDB, ScoreUpdateDB
from ...models.events import ChainEvent, ZERO_ADDRESS
from ..store.entity_store import EntityStore
from . import daily_stats
from .daily_stats import DailyStatsAccumulator


logger = logging.getLogger(__name__)

INITIAL_DATA_VERSION = 1
EMPTY_PROOF = "0x00"


def record_activity(user: UserDB, timestamp: int) -> None:
    """first_activity_at is written once; last_activity_at always moves."""
    if user.first_activity_at == 0:
        user.first_activity_at = timestamp
    user.last_activity_at = timestamp


def handle_score_minted(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    params = event.params

    store.create(
        CreditScoreDB,
        str(params.token_id),
        owner=params.owner,
        score=0,
        last_updated=event.timestamp,
        data_version=INITIAL_DATA_VERSION,
        score_proof=EMPTY_PROOF,
        update_count=0,
        created_at=event.timestamp,
        created_tx=event.transaction_hash,
    )

    user, _ = store.get_or_create(UserDB, params.owner)
    user.token_id = params.token_id
    user.has_active_sbt = True
    user.current_score = 0
    record_activity(user, event.timestamp)
    store.save(user)

    buckets.increment(event.timestamp, daily_stats.MINT)


def handle_score_updated(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    params = event.params

    score = store.get(CreditScoreDB, str(params.token_id))
    if score is None:
        logger.warning(
            f"ScoreUpdated for unminted token {params.token_id} "
            f"at {event.position}, tx {event.transaction_hash}; skipping"
        )
        return

    _, created = store.append(
        ScoreUpdateDB,
        event.log_id,
        token_id=params.token_id,
        owner=score.owner,
        old_score=params.old_score,
        new_score=params.new_score,
        data_version=params.data_version,
        updated_by=params.updated_by,
        timestamp=event.timestamp,
        transaction_hash=event.transaction_hash,
        block_number=event.block_number,
        log_index=event.log_index,
    )
    if not created:
        logger.debug(f"ScoreUpdate {event.log_id} already recorded; skipping")
        return

    score.score = params.new_score
    score.last_updated = event.timestamp
    score.data_version = params.data_version
    score.update_count += 1
    store.save(score)

    user, _ = store.get_or_create(UserDB, score.owner)
    user.current_score = params.new_score
    user.total_score_updates += 1
    user.last_activity_at = event.timestamp
    store.save(user)

    buckets.increment(event.timestamp, daily_stats.SCORE_UPDATE)


def handle_transfer(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    params = event.params

    if params.from_address == ZERO_ADDRESS:
        # Mint leg; ScoreMinted already carried the user state
        return

    if params.to_address == ZERO_ADDRESS:
        user, _ = store.get_or_create(UserDB, params.from_address)
        user.has_active_sbt = False
        user.token_id = None
        user.current_score = None
        store.save(user)
        logger.info(f"Token {params.token_id} burned by {params.from_address}")
        return

    # Soulbound tokens cannot move between accounts
    logger.warning(
        f"Unexpected transfer of token {params.token_id} from {params.from_address} "
        f"to {params.to_address} at {event.position}; ignoring"
    )
