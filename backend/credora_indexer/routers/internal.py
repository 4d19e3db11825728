"""
Internal API Routes

System-only endpoints guarded by the internal API key:
- Event ingest (replays, backfills, fixtures) through the indexing engine
- Indexer status (cursor position)
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Header
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..errors import EventProcessingError, InvalidEventError
from ..services.indexing import IndexingEngine
from ..services.query import IndexQueryService
from ..services.source import InMemoryEventSource


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])


# =============================================================================
# INTERNAL API KEY VALIDATION
# =============================================================================

async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for system endpoints."""
    if x_internal_key != config.INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class IngestRequest(BaseModel):
    events: List[Dict[str, Any]] = Field(..., description="Decoded chain events")
    strict: bool = Field(False, description="Reject out-of-order batches instead of sorting them")


class CursorStatus(BaseModel):
    block_number: int
    log_index: int
    events_applied: int
    updated_at: Optional[str] = None


class IngestResponse(BaseModel):
    received: int
    applied: int
    duplicates: int
    cursor: CursorStatus


def _cursor_status(db: Session) -> CursorStatus:
    cursor = IndexQueryService(db).get_cursor(IndexingEngine.DEFAULT_CURSOR)
    if cursor is None:
        return CursorStatus(block_number=-1, log_index=-1, events_applied=0)
    return CursorStatus(
        block_number=cursor.block_number,
        log_index=cursor.log_index,
        events_applied=cursor.events_applied,
        updated_at=cursor.updated_at.isoformat() if cursor.updated_at else None,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/events", response_model=IngestResponse)
async def ingest_events(
    request: IngestRequest,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Apply a batch of events through the indexing engine.

    Events at or before the cursor are counted as duplicates. On failure the
    events before the failing one stay committed; the response names the
    failing position so the batch can be resubmitted.
    """
    try:
        source = InMemoryEventSource.from_dicts(request.events, strict=request.strict)
    except InvalidEventError as e:
        raise HTTPException(status_code=400, detail=str(e))

    engine = IndexingEngine(db)
    try:
        result = engine.run(source)
    except EventProcessingError as e:
        logger.error(f"Ingest aborted at {e.position}: {e}")
        raise HTTPException(
            status_code=500,
            detail={
                "error": str(e),
                "position": list(e.position) if e.position else None,
            },
        )

    return IngestResponse(
        received=len(source),
        applied=result.applied,
        duplicates=result.duplicates,
        cursor=_cursor_status(db),
    )


@router.get("/status", response_model=CursorStatus)
async def indexer_status(
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """Position of the last applied event."""
    return _cursor_status(db)
