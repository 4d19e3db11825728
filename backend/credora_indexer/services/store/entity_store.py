"""
Entity Store

Key-addressed persistence for derived entities over a SQLAlchemy session.
Owns no business logic. Within one event-processing pass every read sees
the writes made earlier in that pass (created entities are flushed on
creation, so the identity map serves later lookups).

Transaction boundaries belong to the IndexingEngine: the store never commits.
"""
from typing import Any, Dict, Optional, Tuple, Type, TypeVar

from sqlalchemy.orm import Session

from ...models.db_models import (
    UserDB,
    ProtocolStatsDB,
    OracleDB,
    DailyStatsDB,
    IndexerCursorDB,
)


E = TypeVar("E")


# Default field values for lazily created entities.
# ORM column defaults only apply at flush time; handlers need real values
# on the instance immediately (e.g. counter + 1).
ENTITY_DEFAULTS: Dict[type, Dict[str, Any]] = {
    UserDB: {
        "token_id": None,
        "has_active_sbt": False,
        "current_score": None,
        "total_score_updates": 0,
        "active_permissions": 0,
        "total_permissions_granted": 0,
        "first_activity_at": 0,
        "last_activity_at": 0,
    },
    ProtocolStatsDB: {
        "total_permissions_received": 0,
        "active_permissions": 0,
        "total_access_used": 0,
        "first_permission_at": 0,
    },
    OracleDB: {
        "is_active": True,
        "added_at": 0,
        "updates_submitted": 0,
    },
    DailyStatsDB: {
        "mint_count": 0,
        "update_count": 0,
        "permission_grant_count": 0,
        "permission_revoke_count": 0,
        "access_usage_count": 0,
    },
    IndexerCursorDB: {
        "block_number": -1,
        "log_index": -1,
        "events_applied": 0,
    },
}


class EntityStore:
    """
    Load-by-id, create-if-absent and save for derived entities.

    Usage:
        store = EntityStore(db)
        user, created = store.get_or_create(UserDB, address)
        user.last_activity_at = event.timestamp
        store.save(user)
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, model: Type[E], entity_id: Any) -> Optional[E]:
        """Load an entity by id, or None if it does not exist."""
        return self.db.get(model, entity_id)

    def get_or_create(
        self,
        model: Type[E],
        entity_id: Any,
        **fields: Any,
    ) -> Tuple[E, bool]:
        """
        Load an entity, or construct it from ENTITY_DEFAULTS plus `fields`.

        `fields` only apply when the entity is created.

        Returns:
            (entity, was_created)
        """
        entity = self.db.get(model, entity_id)
        if entity is not None:
            return entity, False

        values = dict(ENTITY_DEFAULTS.get(model, {}))
        values.update(fields)
        entity = model(id=entity_id, **values)
        self.db.add(entity)
        self.db.flush()
        return entity, True

    def create(self, model: Type[E], entity_id: Any, **fields: Any) -> E:
        """Insert a new entity or overwrite every given field of an existing one."""
        entity = self.db.get(model, entity_id)
        if entity is None:
            values = dict(ENTITY_DEFAULTS.get(model, {}))
            values.update(fields)
            entity = model(id=entity_id, **values)
            self.db.add(entity)
        else:
            for name, value in fields.items():
                setattr(entity, name, value)
        self.db.flush()
        return entity

    def append(self, model: Type[E], entity_id: Any, **fields: Any) -> Tuple[E, bool]:
        """
        Insert an append-only log row.

        Log rows are keyed by immutable event fields, so an existing row means
        the event was already recorded; it is returned untouched.
        """
        return self.get_or_create(model, entity_id, **fields)

    def save(self, entity: Any) -> None:
        """Stage an entity's changes in the current unit of work."""
        self.db.add(entity)
        self.db.flush()
