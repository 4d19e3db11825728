"""
Permission Manager Handlers

AccessGranted, AccessRevoked and AccessUsed transitions.

One live Permission row per (owner, protocol) pair: a new grant overwrites
the previous one. Active counters on User and ProtocolStats are clamped at
zero on revoke, so a revoke without a matching grant can never drive them
negative.
"""
import logging

from ...models.db_models import UserDB, PermissionDB, PermissionUsageDB, ProtocolStatsDB
from ...models.events import ChainEvent
from ..store.entity_store import EntityStore
from . import daily_stats
from .daily_stats import DailyStatsAccumulator
from .score_handlers import record_activity


logger = logging.getLogger(__name__)


def permission_id(owner: str, protocol: str) -> str:
    return f"{owner}-{protocol}"


def handle_access_granted(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    params = event.params
    pid = permission_id(params.user, params.protocol)

    previous = store.get(PermissionDB, pid)
    if previous is not None and previous.is_active:
        # Superseded grant keeps its contribution to the active counters
        logger.warning(
            f"Grant {pid} re-issued while still active at {event.position}; "
            f"active permission counters will count both grants"
        )

    store.create(
        PermissionDB,
        pid,
        user=params.user,
        protocol=params.protocol,
        granted_at=event.timestamp,
        expires_at=params.expires_at,
        max_requests=params.max_requests,
        used_requests=0,
        is_active=True,
        permission_hash=params.permission_hash,
        created_tx=event.transaction_hash,
    )

    user, _ = store.get_or_create(UserDB, params.user)
    user.active_permissions += 1
    user.total_permissions_granted += 1
    record_activity(user, event.timestamp)
    store.save(user)

    stats, _ = store.get_or_create(ProtocolStatsDB, params.protocol)
    stats.total_permissions_received += 1
    stats.active_permissions += 1
    if stats.first_permission_at == 0:
        stats.first_permission_at = event.timestamp
    store.save(stats)

    buckets.increment(event.timestamp, daily_stats.PERMISSION_GRANT)


def handle_access_revoked(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    params = event.params
    pid = permission_id(params.user, params.protocol)

    permission = store.get(PermissionDB, pid)
    if permission is not None:
        permission.is_active = False
        store.save(permission)
    else:
        logger.warning(f"AccessRevoked for unknown permission {pid} at {event.position}")

    user, _ = store.get_or_create(UserDB, params.user)
    if user.active_permissions > 0:
        user.active_permissions -= 1
    user.last_activity_at = event.timestamp
    store.save(user)

    stats, _ = store.get_or_create(ProtocolStatsDB, params.protocol)
    if stats.active_permissions > 0:
        stats.active_permissions -= 1
    store.save(stats)

    buckets.increment(event.timestamp, daily_stats.PERMISSION_REVOKE)


def handle_access_used(event: ChainEvent, store: EntityStore, buckets: DailyStatsAccumulator) -> None:
    params = event.params

    _, created = store.append(
        PermissionUsageDB,
        event.log_id,
        user=params.user,
        protocol=params.protocol,
        remaining_requests=params.remaining_requests,
        timestamp=event.timestamp,
        transaction_hash=event.transaction_hash,
        block_number=event.block_number,
        log_index=event.log_index,
    )
    if not created:
        logger.debug(f"PermissionUsage {event.log_id} already recorded; skipping")
        return

    pid = permission_id(params.user, params.protocol)
    permission = store.get(PermissionDB, pid)
    if permission is not None:
        # Derived from the reported remainder, not incremented: self-corrects after missed events
        used = permission.max_requests - params.remaining_requests
        if used < 0:
            logger.warning(
                f"Permission {pid} reports {params.remaining_requests} remaining "
                f"of {permission.max_requests}; clamping used requests to 0"
            )
            used = 0
        permission.used_requests = used
        store.save(permission)
    else:
        logger.warning(f"AccessUsed for unknown permission {pid} at {event.position}")

    stats, _ = store.get_or_create(ProtocolStatsDB, params.protocol)
    stats.total_access_used += 1
    store.save(stats)

    buckets.increment(event.timestamp, daily_stats.ACCESS_USAGE)
