"""
Credora Indexer - SQLAlchemy ORM Models
Derived entities materialized from the on-chain event history.

Every entity is owned and mutated by the aggregation handlers only.
Nothing is ever physically deleted: deactivation is a flag or field mutation.
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, BigInteger, Boolean, DateTime, Enum as SQLEnum, Index
from sqlalchemy.types import TypeDecorator

from ..database import Base


class Uint256(TypeDecorator):
    """
    Lossless uint256 column.

    Stored as a decimal string so values beyond 64 bits (token ids, request
    ids, quotas set to type(uint256).max) survive on every backend.
    """
    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


# =============================================================================
# ENUMS
# =============================================================================

class ScoreRequestStatus(str, Enum):
    """Lifecycle of an oracle score request."""
    PENDING = "PENDING"
    FULFILLED = "FULFILLED"


# =============================================================================
# SCORE SBT ENTITIES
# =============================================================================

class UserDB(Base):
    """
    Per-account derived state.

    Invariants:
    - active_permissions >= 0
    - has_active_sbt == (token_id is not None)
    """
    __tablename__ = "users"

    id = Column(String(42), primary_key=True)  # lowercase address
    token_id = Column(Uint256, nullable=True)
    has_active_sbt = Column(Boolean, nullable=False, default=False)
    current_score = Column(Uint256, nullable=True)  # NULL once the token is burned

    total_score_updates = Column(Integer, nullable=False, default=0)
    active_permissions = Column(Integer, nullable=False, default=0)
    total_permissions_granted = Column(Integer, nullable=False, default=0)

    first_activity_at = Column(BigInteger, nullable=False, default=0)  # 0 = never set
    last_activity_at = Column(BigInteger, nullable=False, default=0)

    @property
    def address(self) -> str:
        return self.id


class CreditScoreDB(Base):
    """Score record per token. Survives burns: history is never erased."""
    __tablename__ = "credit_scores"

    id = Column(String(78), primary_key=True)  # token id, decimal string
    owner = Column(String(42), nullable=False, index=True)
    score = Column(Uint256, nullable=False, default=0)
    last_updated = Column(BigInteger, nullable=False)
    data_version = Column(Uint256, nullable=False, default=1)
    score_proof = Column(String(66), nullable=False, default="0x00")
    update_count = Column(Integer, nullable=False, default=0)

    created_at = Column(BigInteger, nullable=False)
    created_tx = Column(String(66), nullable=False)

    @property
    def token_id(self) -> int:
        return int(self.id)


class ScoreUpdateDB(Base):
    """
    One row per on-chain ScoreUpdated emission.
    Append-only. Immutable after insert.
    """
    __tablename__ = "score_updates"
    __table_args__ = (
        Index("ix_score_updates_owner_order", "owner", "timestamp", "block_number", "log_index"),
    )

    id = Column(String(100), primary_key=True)  # {tx_hash}-{log_index}
    token_id = Column(Uint256, nullable=False)
    owner = Column(String(42), nullable=False)
    old_score = Column(Uint256, nullable=False)
    new_score = Column(Uint256, nullable=False)
    data_version = Column(Uint256, nullable=False, default=1)
    updated_by = Column(String(42), nullable=False)

    timestamp = Column(BigInteger, nullable=False)
    transaction_hash = Column(String(66), nullable=False)
    block_number = Column(BigInteger, nullable=False)
    log_index = Column(Integer, nullable=False)


# =============================================================================
# PERMISSION MANAGER ENTITIES
# =============================================================================

class PermissionDB(Base):
    """
    Live permission for an (owner, protocol) pair.
    A new grant overwrites the row rather than appending.

    is_active is the sole gate for whether the permission counts as active.
    """
    __tablename__ = "permissions"

    id = Column(String(85), primary_key=True)  # {owner}-{protocol}
    user = Column(String(42), nullable=False, index=True)
    protocol = Column(String(42), nullable=False, index=True)

    granted_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False)
    max_requests = Column(Uint256, nullable=False)
    used_requests = Column(Uint256, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    permission_hash = Column(String(66), nullable=False)
    created_tx = Column(String(66), nullable=False)


class PermissionUsageDB(Base):
    """
    One row per AccessUsed emission.
    Append-only. Immutable after insert.
    """
    __tablename__ = "permission_usages"
    __table_args__ = (
        Index("ix_permission_usages_pair", "user", "protocol", "timestamp"),
    )

    id = Column(String(100), primary_key=True)  # {tx_hash}-{log_index}
    user = Column(String(42), nullable=False)
    protocol = Column(String(42), nullable=False)
    remaining_requests = Column(Uint256, nullable=False)

    timestamp = Column(BigInteger, nullable=False)
    transaction_hash = Column(String(66), nullable=False)
    block_number = Column(BigInteger, nullable=False)
    log_index = Column(Integer, nullable=False)


class ProtocolStatsDB(Base):
    """Aggregate counters per consuming protocol."""
    __tablename__ = "protocol_stats"

    id = Column(String(42), primary_key=True)  # protocol address
    total_permissions_received = Column(Integer, nullable=False, default=0)
    active_permissions = Column(Integer, nullable=False, default=0)
    total_access_used = Column(Integer, nullable=False, default=0)
    first_permission_at = Column(BigInteger, nullable=False, default=0)  # 0 = never set

    @property
    def protocol(self) -> str:
        return self.id


# =============================================================================
# SCORE ORACLE ENTITIES
# =============================================================================

class OracleDB(Base):
    """Authorized score oracle."""
    __tablename__ = "oracles"

    id = Column(String(42), primary_key=True)  # oracle address
    is_active = Column(Boolean, nullable=False, default=True)
    added_at = Column(BigInteger, nullable=False, default=0)
    updates_submitted = Column(Integer, nullable=False, default=0)

    @property
    def address(self) -> str:
        return self.id


class ScoreRequestDB(Base):
    """Score update request raised on the oracle contract."""
    __tablename__ = "score_requests"

    id = Column(String(78), primary_key=True)  # on-chain request id, decimal string
    user = Column(String(42), nullable=False, index=True)
    requested_at = Column(BigInteger, nullable=False)
    status = Column(SQLEnum(ScoreRequestStatus), nullable=False, default=ScoreRequestStatus.PENDING)
    request_tx = Column(String(66), nullable=False)

    # Set when an oracle submits a score for the requesting user
    fulfilled_at = Column(BigInteger, nullable=True)
    fulfilled_by = Column(String(42), nullable=True)

    @property
    def request_id(self) -> int:
        return int(self.id)


# =============================================================================
# ROLLUPS
# =============================================================================

class DailyStatsDB(Base):
    """
    Activity counters per 86,400-second bucket.
    All five counters are monotonically non-decreasing.
    """
    __tablename__ = "daily_stats"

    id = Column(BigInteger, primary_key=True, autoincrement=False)  # timestamp // 86400
    date = Column(BigInteger, nullable=False)  # bucket start timestamp
    mint_count = Column(Integer, nullable=False, default=0)
    update_count = Column(Integer, nullable=False, default=0)
    permission_grant_count = Column(Integer, nullable=False, default=0)
    permission_revoke_count = Column(Integer, nullable=False, default=0)
    access_usage_count = Column(Integer, nullable=False, default=0)

    @property
    def day_index(self) -> int:
        return self.id


# =============================================================================
# INDEXER BOOKKEEPING
# =============================================================================

class IndexerCursorDB(Base):
    """
    Position of the last fully applied event.

    Advanced in the same transaction as that event's entity writes, so the
    cursor and the derived state can never disagree.
    """
    __tablename__ = "indexer_cursor"

    id = Column(String(50), primary_key=True)  # cursor name, "default" for the main run
    block_number = Column(BigInteger, nullable=False, default=-1)
    log_index = Column(Integer, nullable=False, default=-1)
    events_applied = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def position(self):
        return (self.block_number, self.log_index)
