"""
Contract event ABIs and their bindings to indexer event types.

Only events are listed: the indexer never calls contract functions.
"""
from typing import Dict, List, NamedTuple, Tuple

from web3 import Web3

from ...models.events import EventType, SourceContract


def _event(name: str, *inputs: Tuple[str, str, bool]) -> dict:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [
            {"name": arg, "type": abi_type, "indexed": indexed}
            for abi_type, arg, indexed in inputs
        ],
    }


SCORE_SBT_EVENTS: List[dict] = [
    _event("ScoreMinted", ("address", "owner", True), ("uint256", "tokenId", True)),
    _event(
        "ScoreUpdated",
        ("uint256", "tokenId", True),
        ("uint256", "oldScore", False),
        ("uint256", "newScore", False),
        ("uint256", "dataVersion", False),
        ("address", "updatedBy", True),
    ),
    _event("Transfer", ("address", "from", True), ("address", "to", True), ("uint256", "tokenId", True)),
]

PERMISSION_MANAGER_EVENTS: List[dict] = [
    _event(
        "AccessGranted",
        ("address", "user", True),
        ("address", "protocol", True),
        ("uint256", "expiresAt", False),
        ("uint256", "maxRequests", False),
        ("bytes32", "requestId", True),
    ),
    _event("AccessRevoked", ("address", "user", True), ("address", "protocol", True), ("bytes32", "requestId", True)),
    _event("AccessUsed", ("address", "user", True), ("address", "protocol", True), ("uint256", "remainingRequests", False)),
]

SCORE_ORACLE_EVENTS: List[dict] = [
    _event("ScoreUpdateRequested", ("address", "user", True), ("uint256", "requestId", False)),
    _event(
        "ScoreUpdated",
        ("address", "user", True),
        ("uint256", "score", False),
        ("bytes32", "calculationHash", False),
        ("address", "oracle", True),
        ("uint256", "timestamp", False),
    ),
    _event("OracleAdded", ("address", "oracle", True)),
    _event("OracleRemoved", ("address", "oracle", True)),
]

CONTRACT_ABIS: Dict[SourceContract, List[dict]] = {
    SourceContract.SCORE_SBT: SCORE_SBT_EVENTS,
    SourceContract.PERMISSION_MANAGER: PERMISSION_MANAGER_EVENTS,
    SourceContract.SCORE_ORACLE: SCORE_ORACLE_EVENTS,
}


class EventBinding(NamedTuple):
    """Maps one contract event onto an indexer event type and its params."""
    contract: SourceContract
    abi_name: str
    event_type: EventType
    arg_map: Dict[str, str]  # params field -> ABI argument name


EVENT_BINDINGS: List[EventBinding] = [
    EventBinding(SourceContract.SCORE_SBT, "ScoreMinted", EventType.SCORE_MINTED,
                 {"owner": "owner", "token_id": "tokenId"}),
    EventBinding(SourceContract.SCORE_SBT, "ScoreUpdated", EventType.SCORE_UPDATED,
                 {"token_id": "tokenId", "old_score": "oldScore", "new_score": "newScore",
                  "data_version": "dataVersion", "updated_by": "updatedBy"}),
    EventBinding(SourceContract.SCORE_SBT, "Transfer", EventType.TRANSFER,
                 {"from_address": "from", "to_address": "to", "token_id": "tokenId"}),
    EventBinding(SourceContract.PERMISSION_MANAGER, "AccessGranted", EventType.ACCESS_GRANTED,
                 {"user": "user", "protocol": "protocol", "expires_at": "expiresAt",
                  "max_requests": "maxRequests", "permission_hash": "requestId"}),
    EventBinding(SourceContract.PERMISSION_MANAGER, "AccessRevoked", EventType.ACCESS_REVOKED,
                 {"user": "user", "protocol": "protocol", "permission_hash": "requestId"}),
    EventBinding(SourceContract.PERMISSION_MANAGER, "AccessUsed", EventType.ACCESS_USED,
                 {"user": "user", "protocol": "protocol", "remaining_requests": "remainingRequests"}),
    EventBinding(SourceContract.SCORE_ORACLE, "ScoreUpdateRequested", EventType.SCORE_UPDATE_REQUESTED,
                 {"user": "user", "request_id": "requestId"}),
    EventBinding(SourceContract.SCORE_ORACLE, "ScoreUpdated", EventType.ORACLE_SCORE_SUBMITTED,
                 {"user": "user", "score": "score", "calculation_hash": "calculationHash",
                  "oracle": "oracle", "submitted_at": "timestamp"}),
    EventBinding(SourceContract.SCORE_ORACLE, "OracleAdded", EventType.ORACLE_ADDED,
                 {"oracle": "oracle"}),
    EventBinding(SourceContract.SCORE_ORACLE, "OracleRemoved", EventType.ORACLE_REMOVED,
                 {"oracle": "oracle"}),
]


def event_signature(abi: dict) -> str:
    return f"{abi['name']}({','.join(i['type'] for i in abi['inputs'])})"


def event_topic(abi: dict) -> str:
    """keccak256 of the canonical signature, lowercase 0x hex."""
    return Web3.to_hex(Web3.keccak(text=event_signature(abi)))


def topic_index() -> Dict[Tuple[SourceContract, str], EventBinding]:
    """(contract, topic0) -> binding, for routing raw logs."""
    abi_by_name = {
        (contract, abi["name"]): abi
        for contract, abis in CONTRACT_ABIS.items()
        for abi in abis
    }
    return {
        (b.contract, event_topic(abi_by_name[(b.contract, b.abi_name)])): b
        for b in EVENT_BINDINGS
    }
