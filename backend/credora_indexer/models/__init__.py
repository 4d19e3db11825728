"""Credora Indexer - Data Models"""
from .events import (
    # Enums
    EventType, SourceContract,
    # Events
    ChainEvent, EventParams, EVENT_PARAMS,
    ScoreMintedParams, ScoreUpdatedParams, TransferParams,
    AccessGrantedParams, AccessRevokedParams, AccessUsedParams,
    ScoreUpdateRequestedParams, OracleScoreSubmittedParams,
    OracleAddedParams, OracleRemovedParams,
    # Normalization
    ZERO_ADDRESS, normalize_address,
)
from .db_models import (
    ScoreRequestStatus,
    UserDB, CreditScoreDB, ScoreUpdateDB,
    PermissionDB, PermissionUsageDB, ProtocolStatsDB,
    OracleDB, ScoreRequestDB, DailyStatsDB, IndexerCursorDB,
)

__all__ = [
    "EventType", "SourceContract",
    "ChainEvent", "EventParams", "EVENT_PARAMS",
    "ScoreMintedParams", "ScoreUpdatedParams", "TransferParams",
    "AccessGrantedParams", "AccessRevokedParams", "AccessUsedParams",
    "ScoreUpdateRequestedParams", "OracleScoreSubmittedParams",
    "OracleAddedParams", "OracleRemovedParams",
    "ZERO_ADDRESS", "normalize_address",
    "ScoreRequestStatus",
    "UserDB", "CreditScoreDB", "ScoreUpdateDB",
    "PermissionDB", "PermissionUsageDB", "ProtocolStatsDB",
    "OracleDB", "ScoreRequestDB", "DailyStatsDB", "IndexerCursorDB",
]
