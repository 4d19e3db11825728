"""Credora Indexer - API Routers"""
from .users import router as users_router
from .scores import router as scores_router
from .permissions import router as permissions_router
from .protocols import router as protocols_router
from .stats import router as stats_router
from .internal import router as internal_router

__all__ = [
    "users_router",
    "scores_router",
    "permissions_router",
    "protocols_router",
    "stats_router",
    "internal_router",
]
