"""
Credora Indexer - Chain Event Models

Typed, immutable representation of the log events the indexer consumes.
Every event carries its canonical position (block number, log index), the
block timestamp and the originating transaction hash, plus a payload whose
shape depends on the event type.

Entity ids are derived from these immutable fields only, so re-processing
the same event always addresses the same entities.
"""
from __future__ import annotations

from dataclasses import MISSING, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type

from web3 import Web3

from ..errors import InvalidAddressError, InvalidEventError


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize_address(value: Any) -> str:
    """Lowercase 0x-prefixed hex form used for every address-derived id."""
    if isinstance(value, (bytes, bytearray)):
        value = Web3.to_hex(value)
    if not isinstance(value, str):
        raise InvalidAddressError(f"Address must be a hex string, got {type(value).__name__}")
    lowered = value.strip().lower()
    if not Web3.is_address(lowered):
        raise InvalidAddressError(f"Not a valid address: {value!r}")
    # is_address also accepts bare 40-digit hex
    return Web3.to_checksum_address(lowered).lower()


HASH_BYTES = 32


def normalize_hex(value: Any) -> str:
    """Lowercase 0x-prefixed hex for transaction hashes and bytes32 values."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != HASH_BYTES:
            raise InvalidEventError(f"Expected {HASH_BYTES} bytes, got {len(value)}")
        return Web3.to_hex(value)
    if not isinstance(value, str):
        raise InvalidEventError(f"Expected hex string, got {type(value).__name__}")
    lowered = value.strip().lower()
    if not lowered.startswith("0x"):
        lowered = "0x" + lowered
    try:
        int(lowered, 16)
    except ValueError:
        raise InvalidEventError(f"Not a hex value: {value!r}")
    if len(lowered) != 2 + 2 * HASH_BYTES:
        raise InvalidEventError(f"Expected {HASH_BYTES}-byte hex value, got {value!r}")
    return lowered


def to_uint(value: Any) -> int:
    """Coerce int, decimal string or 0x-hex string into a non-negative int."""
    if isinstance(value, bool):
        raise InvalidEventError("Boolean is not a valid uint")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            result = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            raise InvalidEventError(f"Not an integer: {value!r}")
    else:
        raise InvalidEventError(f"Not an integer: {value!r}")
    if result < 0:
        raise InvalidEventError(f"uint cannot be negative: {value!r}")
    return result


_COERCERS = {
    "address": normalize_address,
    "uint": to_uint,
    "bytes32": normalize_hex,
}


# =============================================================================
# ENUMS
# =============================================================================

class EventType(str, Enum):
    """Event variants, valued by their on-chain event names."""
    SCORE_MINTED = "ScoreMinted"
    SCORE_UPDATED = "ScoreUpdated"
    TRANSFER = "Transfer"
    ACCESS_GRANTED = "AccessGranted"
    ACCESS_REVOKED = "AccessRevoked"
    ACCESS_USED = "AccessUsed"
    SCORE_UPDATE_REQUESTED = "ScoreUpdateRequested"
    # The oracle contract's own ScoreUpdated emission
    ORACLE_SCORE_SUBMITTED = "OracleScoreSubmitted"
    ORACLE_ADDED = "OracleAdded"
    ORACLE_REMOVED = "OracleRemoved"

    @classmethod
    def parse(cls, value: Any) -> "EventType":
        if isinstance(value, cls):
            return value
        for member in cls:
            if value == member.value or value == member.name:
                return member
        raise InvalidEventError(f"Unknown event type: {value!r}")


class SourceContract(str, Enum):
    SCORE_SBT = "ScoreSBT"
    PERMISSION_MANAGER = "PermissionManager"
    SCORE_ORACLE = "ScoreOracle"


# =============================================================================
# PAYLOADS
# =============================================================================

def _param(kind: str, default: Any = MISSING):
    return field(default=default, metadata={"kind": kind})


@dataclass(frozen=True)
class EventParams:
    """Base for typed payloads. Field metadata drives coercion from raw values."""

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> "EventParams":
        if not isinstance(params, dict):
            raise InvalidEventError(f"{cls.__name__} params must be a mapping")
        values = {}
        for f in fields(cls):
            if f.name not in params or params[f.name] is None:
                if f.default is MISSING:
                    raise InvalidEventError(f"{cls.__name__} missing param '{f.name}'")
                continue
            values[f.name] = _COERCERS[f.metadata["kind"]](params[f.name])
        return cls(**values)

    def to_params(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class ScoreMintedParams(EventParams):
    owner: str = _param("address")
    token_id: int = _param("uint")


@dataclass(frozen=True)
class ScoreUpdatedParams(EventParams):
    token_id: int = _param("uint")
    old_score: int = _param("uint")
    new_score: int = _param("uint")
    updated_by: str = _param("address")
    data_version: int = _param("uint", default=1)


@dataclass(frozen=True)
class TransferParams(EventParams):
    from_address: str = _param("address")
    to_address: str = _param("address")
    token_id: int = _param("uint")


@dataclass(frozen=True)
class AccessGrantedParams(EventParams):
    user: str = _param("address")
    protocol: str = _param("address")
    expires_at: int = _param("uint")
    max_requests: int = _param("uint")
    permission_hash: str = _param("bytes32")


@dataclass(frozen=True)
class AccessRevokedParams(EventParams):
    user: str = _param("address")
    protocol: str = _param("address")
    permission_hash: Optional[str] = _param("bytes32", default=None)


@dataclass(frozen=True)
class AccessUsedParams(EventParams):
    user: str = _param("address")
    protocol: str = _param("address")
    remaining_requests: int = _param("uint")


@dataclass(frozen=True)
class ScoreUpdateRequestedParams(EventParams):
    user: str = _param("address")
    request_id: int = _param("uint")


@dataclass(frozen=True)
class OracleScoreSubmittedParams(EventParams):
    user: str = _param("address")
    score: int = _param("uint")
    oracle: str = _param("address")
    calculation_hash: Optional[str] = _param("bytes32", default=None)
    submitted_at: Optional[int] = _param("uint", default=None)


@dataclass(frozen=True)
class OracleAddedParams(EventParams):
    oracle: str = _param("address")


@dataclass(frozen=True)
class OracleRemovedParams(EventParams):
    oracle: str = _param("address")


EVENT_PARAMS: Dict[EventType, Type[EventParams]] = {
    EventType.SCORE_MINTED: ScoreMintedParams,
    EventType.SCORE_UPDATED: ScoreUpdatedParams,
    EventType.TRANSFER: TransferParams,
    EventType.ACCESS_GRANTED: AccessGrantedParams,
    EventType.ACCESS_REVOKED: AccessRevokedParams,
    EventType.ACCESS_USED: AccessUsedParams,
    EventType.SCORE_UPDATE_REQUESTED: ScoreUpdateRequestedParams,
    EventType.ORACLE_SCORE_SUBMITTED: OracleScoreSubmittedParams,
    EventType.ORACLE_ADDED: OracleAddedParams,
    EventType.ORACLE_REMOVED: OracleRemovedParams,
}

EVENT_CONTRACT: Dict[EventType, SourceContract] = {
    EventType.SCORE_MINTED: SourceContract.SCORE_SBT,
    EventType.SCORE_UPDATED: SourceContract.SCORE_SBT,
    EventType.TRANSFER: SourceContract.SCORE_SBT,
    EventType.ACCESS_GRANTED: SourceContract.PERMISSION_MANAGER,
    EventType.ACCESS_REVOKED: SourceContract.PERMISSION_MANAGER,
    EventType.ACCESS_USED: SourceContract.PERMISSION_MANAGER,
    EventType.SCORE_UPDATE_REQUESTED: SourceContract.SCORE_ORACLE,
    EventType.ORACLE_SCORE_SUBMITTED: SourceContract.SCORE_ORACLE,
    EventType.ORACLE_ADDED: SourceContract.SCORE_ORACLE,
    EventType.ORACLE_REMOVED: SourceContract.SCORE_ORACLE,
}


# =============================================================================
# CHAIN EVENT
# =============================================================================

@dataclass(frozen=True)
class ChainEvent:
    """One decoded log event in canonical chain order."""
    event_type: EventType
    block_number: int
    log_index: int
    timestamp: int
    transaction_hash: str
    params: EventParams
    contract: Optional[str] = None

    def __post_init__(self):
        expected = EVENT_PARAMS[self.event_type]
        if not isinstance(self.params, expected):
            raise InvalidEventError(
                f"{self.event_type.value} expects {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )

    @property
    def position(self) -> Tuple[int, int]:
        return (self.block_number, self.log_index)

    @property
    def log_id(self) -> str:
        """Id for append-only rows: transaction hash + log index."""
        return f"{self.transaction_hash}-{self.log_index}"

    @classmethod
    def build(
        cls,
        event_type: Any,
        block_number: int,
        log_index: int,
        timestamp: int,
        transaction_hash: Any,
        params: Dict[str, Any],
        contract: Optional[str] = None,
    ) -> "ChainEvent":
        etype = EventType.parse(event_type)
        return cls(
            event_type=etype,
            block_number=to_uint(block_number),
            log_index=to_uint(log_index),
            timestamp=to_uint(timestamp),
            transaction_hash=normalize_hex(transaction_hash),
            params=EVENT_PARAMS[etype].from_params(params),
            contract=contract or EVENT_CONTRACT[etype].value,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChainEvent":
        if not isinstance(data, dict):
            raise InvalidEventError("Event must be a mapping")
        try:
            return cls.build(
                event_type=data["event_type"],
                block_number=data["block_number"],
                log_index=data["log_index"],
                timestamp=data["timestamp"],
                transaction_hash=data["transaction_hash"],
                params=data.get("params") or {},
                contract=data.get("contract"),
            )
        except KeyError as e:
            raise InvalidEventError(f"Event missing field {e.args[0]!r}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "contract": self.contract,
            "block_number": self.block_number,
            "log_index": self.log_index,
            "timestamp": self.timestamp,
            "transaction_hash": self.transaction_hash,
            "params": self.params.to_params(),
        }
