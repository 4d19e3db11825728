"""
Credora Indexer - FastAPI Application

Read-only query API over the indexed credit-scoring entities, plus the
internal ingest endpoints.

Architecture:
- EventSource → IndexingEngine → Handlers → Entity Store (one transaction per event)
- IndexQueryService → Routers (committed state only)
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .database import init_db
from .errors import InvalidAddressError, InvalidEventError
from .routers import (
    users_router,
    scores_router,
    permissions_router,
    protocols_router,
    stats_router,
    internal_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Credora Indexer",
    description="""
    Credora Indexer - Credit Score Event Index

    Consumes ScoreSBT, PermissionManager and ScoreOracle log events and
    serves the derived entities.

    ## Entities
    - **Users**: SBT ownership, current score, permission counters
    - **Scores**: per-token score record and update history
    - **Permissions**: live grant per (owner, protocol) and its usage log
    - **Protocols / Oracles / Daily stats**: aggregate counters
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidAddressError)
@app.exception_handler(InvalidEventError)
async def invalid_input_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# Include routers
app.include_router(users_router)
app.include_router(scores_router)
app.include_router(permissions_router)
app.include_router(protocols_router)
app.include_router(stats_router)
app.include_router(internal_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Credora Indexer",
        "version": __version__,
        "description": "Credit Score Event Index",
        "docs": "/docs",
        "contracts": ["ScoreSBT", "PermissionManager", "ScoreOracle"],
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


# For running with: python -m credora_indexer.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
