"""
Credora Indexer - Users API Router

Per-account score state, score history, live permissions and oracle
score requests.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import ScoreRequestStatus
from ..services.query import IndexQueryService, MAX_PAGE_SIZE
from .schemas import (
    UserResponse,
    ScoreUpdateList,
    PermissionList,
    ScoreRequestList,
    user_response,
    score_update_response,
    permission_response,
    score_request_response,
)


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{address}", response_model=UserResponse)
async def get_user(address: str, db: Session = Depends(get_db)):
    """Derived state for one account."""
    user = IndexQueryService(db).get_user(address)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user_response(user)


@router.get("/{address}/score-updates", response_model=ScoreUpdateList)
async def get_score_updates(
    address: str,
    limit: int = Query(100, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    """Score history for an owner, newest first."""
    updates = IndexQueryService(db).get_score_updates(address, limit)
    return ScoreUpdateList(
        updates=[score_update_response(u) for u in updates],
        total=len(updates),
    )


@router.get("/{address}/permissions", response_model=PermissionList)
async def get_active_permissions(address: str, db: Session = Depends(get_db)):
    """Permissions currently flagged active, newest grant first."""
    permissions = IndexQueryService(db).get_active_permissions(address)
    return PermissionList(
        permissions=[permission_response(p) for p in permissions],
        total=len(permissions),
    )


@router.get("/{address}/score-requests", response_model=ScoreRequestList)
async def get_score_requests(
    address: str,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Oracle score requests raised by the account, newest first."""
    status_filter = None
    if status:
        try:
            status_filter = ScoreRequestStatus(status.upper())
        except ValueError:
            valid = [s.value for s in ScoreRequestStatus]
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status. Must be one of: {valid}",
            )

    requests = IndexQueryService(db).get_score_requests(address, status_filter)
    return ScoreRequestList(
        requests=[score_request_response(r) for r in requests],
        total=len(requests),
    )
