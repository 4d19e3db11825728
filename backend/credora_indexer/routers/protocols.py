"""Credora Indexer - Protocol Stats API Router"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.query import IndexQueryService
from .schemas import ProtocolStatsResponse, protocol_stats_response


router = APIRouter(prefix="/protocols", tags=["protocols"])


@router.get("/{protocol}", response_model=ProtocolStatsResponse)
async def get_protocol_stats(protocol: str, db: Session = Depends(get_db)):
    stats = IndexQueryService(db).get_protocol_stats(protocol)
    if not stats:
        raise HTTPException(status_code=404, detail="Protocol not found")
    return protocol_stats_response(stats)
