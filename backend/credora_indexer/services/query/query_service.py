"""
Index Query Service

Read-only projections over the derived entities. Never writes.

Readers only ever observe committed state: the engine commits each event's
writes as one unit, so a lookup never sees a half-applied event.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import (
    UserDB,
    CreditScoreDB,
    ScoreUpdateDB,
    PermissionDB,
    PermissionUsageDB,
    ProtocolStatsDB,
    OracleDB,
    ScoreRequestDB,
    ScoreRequestStatus,
    DailyStatsDB,
    IndexerCursorDB,
)
from ...models.events import normalize_address, to_uint
from ..indexing.permission_handlers import permission_id


MAX_PAGE_SIZE = 1000


def _check_limit(limit: int) -> int:
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return limit


class IndexQueryService:
    """
    Point lookups and filtered listings for the frontend/SDK.

    Address arguments accept any case; they are normalized the same way the
    handlers normalize them at index time.
    """

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Point lookups
    # =========================================================================

    def get_user(self, address: str) -> Optional[UserDB]:
        return self.db.get(UserDB, normalize_address(address))

    def get_credit_score(self, token_id) -> Optional[CreditScoreDB]:
        return self.db.get(CreditScoreDB, str(to_uint(token_id)))

    def get_permission(self, owner: str, protocol: str) -> Optional[PermissionDB]:
        pid = permission_id(normalize_address(owner), normalize_address(protocol))
        return self.db.get(PermissionDB, pid)

    def get_protocol_stats(self, protocol: str) -> Optional[ProtocolStatsDB]:
        return self.db.get(ProtocolStatsDB, normalize_address(protocol))

    def get_daily_stats(self, day_index: int) -> Optional[DailyStatsDB]:
        return self.db.get(DailyStatsDB, day_index)

    def get_oracle(self, address: str) -> Optional[OracleDB]:
        return self.db.get(OracleDB, normalize_address(address))

    def get_score_request(self, request_id) -> Optional[ScoreRequestDB]:
        return self.db.get(ScoreRequestDB, str(to_uint(request_id)))

    def get_cursor(self, name: str = "default") -> Optional[IndexerCursorDB]:
        return self.db.get(IndexerCursorDB, name)

    # =========================================================================
    # Listings
    # =========================================================================

    def get_score_updates(self, owner: str, limit: int = 100) -> List[ScoreUpdateDB]:
        """Score history for an owner, newest first."""
        return (
            self.db.query(ScoreUpdateDB)
            .filter(ScoreUpdateDB.owner == normalize_address(owner))
            .order_by(
                ScoreUpdateDB.timestamp.desc(),
                ScoreUpdateDB.block_number.desc(),
                ScoreUpdateDB.log_index.desc(),
            )
            .limit(_check_limit(limit))
            .all()
        )

    def get_active_permissions(self, owner: str) -> List[PermissionDB]:
        """Permissions currently flagged active for an owner, newest grant first."""
        return (
            self.db.query(PermissionDB)
            .filter(
                PermissionDB.user == normalize_address(owner),
                PermissionDB.is_active.is_(True),
            )
            .order_by(PermissionDB.granted_at.desc(), PermissionDB.protocol)
            .all()
        )

    def get_permission_usages(self, owner: str, protocol: str, limit: int = 100) -> List[PermissionUsageDB]:
        """Quota consumption log for a pair, newest first."""
        return (
            self.db.query(PermissionUsageDB)
            .filter(
                PermissionUsageDB.user == normalize_address(owner),
                PermissionUsageDB.protocol == normalize_address(protocol),
            )
            .order_by(
                PermissionUsageDB.timestamp.desc(),
                PermissionUsageDB.block_number.desc(),
                PermissionUsageDB.log_index.desc(),
            )
            .limit(_check_limit(limit))
            .all()
        )

    def get_score_requests(
        self,
        user: str,
        status: Optional[ScoreRequestStatus] = None,
    ) -> List[ScoreRequestDB]:
        query = self.db.query(ScoreRequestDB).filter(ScoreRequestDB.user == normalize_address(user))
        if status:
            query = query.filter(ScoreRequestDB.status == status)
        return query.order_by(ScoreRequestDB.requested_at.desc()).all()

    def list_oracles(self, active_only: bool = False) -> List[OracleDB]:
        query = self.db.query(OracleDB)
        if active_only:
            query = query.filter(OracleDB.is_active.is_(True))
        return query.order_by(OracleDB.added_at, OracleDB.id).all()

    def list_daily_stats(self, start_day: int, end_day: int) -> List[DailyStatsDB]:
        """Buckets in [start_day, end_day], oldest first. Days with no activity are absent."""
        if end_day < start_day:
            raise ValueError("end_day must be >= start_day")
        return (
            self.db.query(DailyStatsDB)
            .filter(DailyStatsDB.id >= start_day, DailyStatsDB.id <= end_day)
            .order_by(DailyStatsDB.id)
            .all()
        )
