"""
Indexing Services

Event dispatch and aggregation:
- IndexingEngine: ordered, transactional application of chain events
- Handlers: one state transition per event type
- DailyStatsAccumulator: per-day activity counters
"""

from .daily_stats import DailyStatsAccumulator, day_index, bucket_start, SECONDS_PER_DAY
from .engine import IndexingEngine, RunResult, HANDLERS

__all__ = [
    'IndexingEngine',
    'RunResult',
    'HANDLERS',
    'DailyStatsAccumulator',
    'day_index',
    'bucket_start',
    'SECONDS_PER_DAY',
]
