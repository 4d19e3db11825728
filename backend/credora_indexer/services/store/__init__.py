"""Entity store over SQLAlchemy sessions."""
from .entity_store import EntityStore, ENTITY_DEFAULTS

__all__ = ["EntityStore", "ENTITY_DEFAULTS"]
