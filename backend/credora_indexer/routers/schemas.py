"""
Credora Indexer - API Response Models

uint256 quantities (token ids, scores, quotas, request ids) are serialized as
decimal strings: they do not fit in a JSON number without losing precision.
"""
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.db_models import (
    UserDB,
    CreditScoreDB,
    ScoreUpdateDB,
    PermissionDB,
    PermissionUsageDB,
    ProtocolStatsDB,
    OracleDB,
    ScoreRequestDB,
    DailyStatsDB,
)


def _uint(value) -> Optional[str]:
    return None if value is None else str(value)


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class UserResponse(BaseModel):
    address: str
    token_id: Optional[str] = Field(None, description="uint256, null when no SBT is held")
    has_active_sbt: bool
    current_score: Optional[str] = Field(None, description="uint256, null when no SBT is held")
    total_score_updates: int
    active_permissions: int
    total_permissions_granted: int
    first_activity_at: int
    last_activity_at: int


class CreditScoreResponse(BaseModel):
    token_id: str
    owner: str
    score: str
    last_updated: int
    data_version: str
    score_proof: str
    update_count: int
    created_at: int
    created_tx: str


class ScoreUpdateResponse(BaseModel):
    id: str
    token_id: str
    owner: str
    old_score: str
    new_score: str
    data_version: str
    updated_by: str
    timestamp: int
    transaction_hash: str
    block_number: int
    log_index: int


class ScoreUpdateList(BaseModel):
    updates: List[ScoreUpdateResponse]
    total: int


class PermissionResponse(BaseModel):
    id: str
    user: str
    protocol: str
    granted_at: int
    expires_at: int
    max_requests: str
    used_requests: str
    is_active: bool
    permission_hash: str
    created_tx: str


class PermissionList(BaseModel):
    permissions: List[PermissionResponse]
    total: int


class PermissionUsageResponse(BaseModel):
    id: str
    user: str
    protocol: str
    remaining_requests: str
    timestamp: int
    transaction_hash: str
    block_number: int
    log_index: int


class PermissionUsageList(BaseModel):
    usages: List[PermissionUsageResponse]
    total: int


class ProtocolStatsResponse(BaseModel):
    protocol: str
    total_permissions_received: int
    active_permissions: int
    total_access_used: int
    first_permission_at: int


class OracleResponse(BaseModel):
    address: str
    is_active: bool
    added_at: int
    updates_submitted: int


class OracleList(BaseModel):
    oracles: List[OracleResponse]
    total: int


class ScoreRequestResponse(BaseModel):
    request_id: str
    user: str
    requested_at: int
    status: str
    request_tx: str
    fulfilled_at: Optional[int] = None
    fulfilled_by: Optional[str] = None


class ScoreRequestList(BaseModel):
    requests: List[ScoreRequestResponse]
    total: int


class DailyStatsResponse(BaseModel):
    day_index: int
    date: int = Field(..., description="Bucket start, unix seconds")
    mint_count: int
    update_count: int
    permission_grant_count: int
    permission_revoke_count: int
    access_usage_count: int


class DailyStatsList(BaseModel):
    days: List[DailyStatsResponse]
    total: int


# =============================================================================
# ENTITY -> RESPONSE
# =============================================================================

def user_response(u: UserDB) -> UserResponse:
    return UserResponse(
        address=u.address,
        token_id=_uint(u.token_id),
        has_active_sbt=u.has_active_sbt,
        current_score=_uint(u.current_score),
        total_score_updates=u.total_score_updates,
        active_permissions=u.active_permissions,
        total_permissions_granted=u.total_permissions_granted,
        first_activity_at=u.first_activity_at,
        last_activity_at=u.last_activity_at,
    )


def credit_score_response(s: CreditScoreDB) -> CreditScoreResponse:
    return CreditScoreResponse(
        token_id=s.id,
        owner=s.owner,
        score=_uint(s.score),
        last_updated=s.last_updated,
        data_version=_uint(s.data_version),
        score_proof=s.score_proof,
        update_count=s.update_count,
        created_at=s.created_at,
        created_tx=s.created_tx,
    )


def score_update_response(u: ScoreUpdateDB) -> ScoreUpdateResponse:
    return ScoreUpdateResponse(
        id=u.id,
        token_id=_uint(u.token_id),
        owner=u.owner,
        old_score=_uint(u.old_score),
        new_score=_uint(u.new_score),
        data_version=_uint(u.data_version),
        updated_by=u.updated_by,
        timestamp=u.timestamp,
        transaction_hash=u.transaction_hash,
        block_number=u.block_number,
        log_index=u.log_index,
    )


def permission_response(p: PermissionDB) -> PermissionResponse:
    return PermissionResponse(
        id=p.id,
        user=p.user,
        protocol=p.protocol,
        granted_at=p.granted_at,
        expires_at=p.expires_at,
        max_requests=_uint(p.max_requests),
        used_requests=_uint(p.used_requests),
        is_active=p.is_active,
        permission_hash=p.permission_hash,
        created_tx=p.created_tx,
    )


def permission_usage_response(u: PermissionUsageDB) -> PermissionUsageResponse:
    return PermissionUsageResponse(
        id=u.id,
        user=u.user,
        protocol=u.protocol,
        remaining_requests=_uint(u.remaining_requests),
        timestamp=u.timestamp,
        transaction_hash=u.transaction_hash,
        block_number=u.block_number,
        log_index=u.log_index,
    )


def protocol_stats_response(p: ProtocolStatsDB) -> ProtocolStatsResponse:
    return ProtocolStatsResponse(
        protocol=p.protocol,
        total_permissions_received=p.total_permissions_received,
        active_permissions=p.active_permissions,
        total_access_used=p.total_access_used,
        first_permission_at=p.first_permission_at,
    )


def oracle_response(o: OracleDB) -> OracleResponse:
    return OracleResponse(
        address=o.address,
        is_active=o.is_active,
        added_at=o.added_at,
        updates_submitted=o.updates_submitted,
    )


def score_request_response(r: ScoreRequestDB) -> ScoreRequestResponse:
    return ScoreRequestResponse(
        request_id=r.id,
        user=r.user,
        requested_at=r.requested_at,
        status=r.status.value,
        request_tx=r.request_tx,
        fulfilled_at=r.fulfilled_at,
        fulfilled_by=r.fulfilled_by,
    )


def daily_stats_response(d: DailyStatsDB) -> DailyStatsResponse:
    return DailyStatsResponse(
        day_index=d.day_index,
        date=d.date,
        mint_count=d.mint_count,
        update_count=d.update_count,
        permission_grant_count=d.permission_grant_count,
        permission_revoke_count=d.permission_revoke_count,
        access_usage_count=d.access_usage_count,
    )
