"""
Credora Indexer - Permissions API Router

Live permission per (owner, protocol) pair and its usage log.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.query import IndexQueryService, MAX_PAGE_SIZE
from .schemas import (
    PermissionResponse,
    PermissionUsageList,
    permission_response,
    permission_usage_response,
)


router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get("/{owner}/{protocol}", response_model=PermissionResponse)
async def get_permission(owner: str, protocol: str, db: Session = Depends(get_db)):
    """Latest grant for the pair, active or not."""
    permission = IndexQueryService(db).get_permission(owner, protocol)
    if not permission:
        raise HTTPException(status_code=404, detail="Permission not found")
    return permission_response(permission)


@router.get("/{owner}/{protocol}/usage", response_model=PermissionUsageList)
async def get_permission_usage(
    owner: str,
    protocol: str,
    limit: int = Query(100, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
):
    usages = IndexQueryService(db).get_permission_usages(owner, protocol, limit)
    return PermissionUsageList(
        usages=[permission_usage_response(u) for u in usages],
        total=len(usages),
    )
