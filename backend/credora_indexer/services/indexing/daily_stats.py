"""
Daily Stats Accumulator

Maps event timestamps to 86,400-second buckets and increments exactly one
counter per call. Buckets are created lazily, never merged, never closed:
a late event for a past day still lands in that day's bucket.
"""
from ...models.db_models import DailyStatsDB
from ..store.entity_store import EntityStore


SECONDS_PER_DAY = 86400

# Counter names accepted by DailyStatsAccumulator.increment
MINT = "mint_count"
SCORE_UPDATE = "update_count"
PERMISSION_GRANT = "permission_grant_count"
PERMISSION_REVOKE = "permission_revoke_count"
ACCESS_USAGE = "access_usage_count"

COUNTERS = (MINT, SCORE_UPDATE, PERMISSION_GRANT, PERMISSION_REVOKE, ACCESS_USAGE)


def day_index(timestamp: int) -> int:
    """Bucket index for a unix timestamp."""
    return timestamp // SECONDS_PER_DAY


def bucket_start(day: int) -> int:
    """Unix timestamp of the first second of a bucket."""
    return day * SECONDS_PER_DAY


class DailyStatsAccumulator:
    """Increments per-day counters through the entity store."""

    def __init__(self, store: EntityStore):
        self.store = store

    def increment(self, timestamp: int, counter: str) -> DailyStatsDB:
        if counter not in COUNTERS:
            raise ValueError(f"Unknown daily counter: {counter!r}")

        day = day_index(timestamp)
        stats, _ = self.store.get_or_create(DailyStatsDB, day, date=bucket_start(day))
        setattr(stats, counter, getattr(stats, counter) + 1)
        self.store.save(stats)
        return stats
