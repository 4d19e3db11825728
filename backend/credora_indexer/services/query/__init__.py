"""Read-only query surface over the indexed entities."""
from .query_service import IndexQueryService, MAX_PAGE_SIZE

__all__ = ["IndexQueryService", "MAX_PAGE_SIZE"]
