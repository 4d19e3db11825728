"""Credora Indexer - Credit Scores API Router"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..services.query import IndexQueryService
from .schemas import CreditScoreResponse, credit_score_response


router = APIRouter(prefix="/scores", tags=["scores"])


@router.get("/{token_id}", response_model=CreditScoreResponse)
async def get_credit_score(token_id: str, db: Session = Depends(get_db)):
    """
    Score record for a token id (decimal or 0x-hex).

    Burned tokens are still returned: the record outlives the SBT.
    """
    score = IndexQueryService(db).get_credit_score(token_id)
    if not score:
        raise HTTPException(status_code=404, detail="Credit score not found")
    return credit_score_response(score)
