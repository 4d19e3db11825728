"""
Credora Indexer - Stats & Oracles API Router

Daily activity rollups and the oracle registry.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.query import IndexQueryService
from .schemas import (
    DailyStatsResponse,
    DailyStatsList,
    OracleResponse,
    OracleList,
    daily_stats_response,
    oracle_response,
)


router = APIRouter(tags=["stats"])

MAX_DAY_RANGE = 366


# =============================================================================
# DAILY STATS
# =============================================================================

@router.get("/stats/daily", response_model=DailyStatsList)
async def list_daily_stats(
    start: int = Query(..., ge=0, description="First day index (timestamp // 86400)"),
    end: int = Query(..., ge=0, description="Last day index, inclusive"),
    db: Session = Depends(get_db),
):
    """Buckets in [start, end]. Days without activity are omitted."""
    if end < start:
        raise HTTPException(status_code=400, detail="end must be >= start")
    if end - start >= MAX_DAY_RANGE:
        raise HTTPException(status_code=400, detail=f"Range exceeds {MAX_DAY_RANGE} days")

    days = IndexQueryService(db).list_daily_stats(start, end)
    return DailyStatsList(
        days=[daily_stats_response(d) for d in days],
        total=len(days),
    )


@router.get("/stats/daily/{day_index}", response_model=DailyStatsResponse)
async def get_daily_stats(day_index: int, db: Session = Depends(get_db)):
    stats = IndexQueryService(db).get_daily_stats(day_index)
    if not stats:
        raise HTTPException(status_code=404, detail="No activity recorded for this day")
    return daily_stats_response(stats)


# =============================================================================
# ORACLES
# =============================================================================

@router.get("/oracles", response_model=OracleList)
async def list_oracles(active_only: bool = False, db: Session = Depends(get_db)):
    oracles = IndexQueryService(db).list_oracles(active_only)
    return OracleList(
        oracles=[oracle_response(o) for o in oracles],
        total=len(oracles),
    )


@router.get("/oracles/{address}", response_model=OracleResponse)
async def get_oracle(address: str, db: Session = Depends(get_db)):
    oracle = IndexQueryService(db).get_oracle(address)
    if not oracle:
        raise HTTPException(status_code=404, detail="Oracle not found")
    return oracle_response(oracle)
