"""
Web3 event source.

Streams Credora contract logs from a JSON-RPC node:
- eth_getLogs over block windows for all configured contract addresses
- decodes each log against the contract event ABIs
- hydrates block timestamps (cached)
- yields events in (blockNumber, logIndex) order

Only blocks at or below `latest - confirmations` are read, so recent blocks
that may still be reorganized away are never aggregated.

RPC failures stall the stream: the same window is retried with backoff
until it succeeds. A window is never skipped.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from ... import config
from ...errors import InvalidEventError
from ...models.events import ChainEvent, SourceContract, normalize_address
from .abis import CONTRACT_ABIS, EventBinding, topic_index
from .base import canonical_order


logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (requests.exceptions.RequestException, Web3Exception, ConnectionError, TimeoutError)


class Web3EventSource:
    """
    Block-window log poller over a web3 connection.

    Usage:
        source = Web3EventSource.from_config()
        engine.run(source)
    """

    MAX_BLOCK_CACHE = 1000

    def __init__(
        self,
        w3: Web3,
        contracts: Dict[SourceContract, str],
        start_block: int = 0,
        block_stride: int = 2000,
        confirmations: int = 12,
        poll_interval: float = 5.0,
        follow: bool = True,
        max_retry_delay: float = 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not contracts:
            raise ValueError("At least one contract address is required")
        if block_stride < 1:
            raise ValueError("block_stride must be >= 1")

        self.w3 = w3
        self.start_block = start_block
        self.block_stride = block_stride
        self.confirmations = confirmations
        self.poll_interval = poll_interval
        self.follow = follow
        self.max_retry_delay = max_retry_delay
        self.sleep = sleep

        self.addresses: Dict[str, SourceContract] = {
            normalize_address(address): contract for contract, address in contracts.items()
        }
        self.contracts = {
            contract: w3.eth.contract(
                address=Web3.to_checksum_address(address),
                abi=CONTRACT_ABIS[contract],
            )
            for contract, address in contracts.items()
        }
        self.bindings = topic_index()
        self.block_cache: Dict[int, int] = {}

    @classmethod
    def from_config(cls, start_block: Optional[int] = None, **overrides: Any) -> "Web3EventSource":
        contracts = {
            contract: address
            for contract, address in (
                (SourceContract.SCORE_SBT, config.SCORE_SBT_ADDRESS),
                (SourceContract.PERMISSION_MANAGER, config.PERMISSION_MANAGER_ADDRESS),
                (SourceContract.SCORE_ORACLE, config.SCORE_ORACLE_ADDRESS),
            )
            if address
        }
        w3 = Web3(Web3.HTTPProvider(config.RPC_URL))
        options = {
            "start_block": config.START_BLOCK if start_block is None else start_block,
            "block_stride": config.BLOCK_STRIDE,
            "confirmations": config.CONFIRMATIONS,
            "poll_interval": config.POLL_INTERVAL_SECONDS,
        }
        options.update(overrides)
        return cls(w3, contracts, **options)

    # =========================================================================
    # Stream
    # =========================================================================

    def __iter__(self) -> Iterator[ChainEvent]:
        next_block = self.start_block
        while True:
            safe_head = self.safe_head()
            if next_block > safe_head:
                if not self.follow:
                    logger.info(f"Caught up to safe head {safe_head}")
                    return
                self.sleep(self.poll_interval)
                continue

            to_block = min(next_block + self.block_stride - 1, safe_head)
            events = self._with_retry(
                lambda: self.fetch_window(next_block, to_block),
                f"eth_getLogs [{next_block}, {to_block}]",
            )
            if events:
                logger.info(f"Blocks [{next_block}, {to_block}]: {len(events)} event(s)")
            for event in events:
                yield event
            next_block = to_block + 1

    def safe_head(self) -> int:
        """Highest block considered final."""
        latest = self._with_retry(lambda: self.w3.eth.block_number, "eth_blockNumber")
        return latest - self.confirmations

    def fetch_window(self, from_block: int, to_block: int) -> List[ChainEvent]:
        logs = self.w3.eth.get_logs({
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": [c.address for c in self.contracts.values()],
        })
        events = []
        for log in logs:
            event = self.decode_log(log)
            if event is not None:
                events.append(event)
        return canonical_order(events)

    # =========================================================================
    # Decoding
    # =========================================================================

    def decode_log(self, log: Any) -> Optional[ChainEvent]:
        """Decode a raw log, or None for logs the indexer does not track."""
        contract = self.addresses.get(str(log["address"]).lower())
        if contract is None or not log["topics"]:
            return None

        binding = self.bindings.get((contract, Web3.to_hex(log["topics"][0])))
        if binding is None:
            return None

        event_abi = getattr(self.contracts[contract].events, binding.abi_name)
        try:
            decoded = event_abi().process_log(log)
        except Web3Exception as e:
            # Not retryable: the same bytes decode the same way next time
            raise InvalidEventError(
                f"Cannot decode {binding.abi_name} log at block {log['blockNumber']}: {e}"
            ) from e
        return self.event_from_decoded(binding, decoded, self.block_timestamp(decoded["blockNumber"]))

    @staticmethod
    def event_from_decoded(binding: EventBinding, decoded: Any, timestamp: int) -> ChainEvent:
        args = decoded["args"]
        params = {field: args[arg] for field, arg in binding.arg_map.items()}
        return ChainEvent.build(
            event_type=binding.event_type,
            block_number=decoded["blockNumber"],
            log_index=decoded["logIndex"],
            timestamp=timestamp,
            transaction_hash=decoded["transactionHash"],
            params=params,
            contract=binding.contract.value,
        )

    def block_timestamp(self, block_number: int) -> int:
        cached = self.block_cache.get(block_number)
        if cached is not None:
            return cached

        block = self._with_retry(lambda: self.w3.eth.get_block(block_number), f"eth_getBlockByNumber {block_number}")
        if len(self.block_cache) >= self.MAX_BLOCK_CACHE:
            self.block_cache.clear()
        self.block_cache[block_number] = int(block["timestamp"])
        return self.block_cache[block_number]

    # =========================================================================
    # Retry
    # =========================================================================

    def _with_retry(self, call: Callable[[], T], description: str) -> T:
        """Retry until the call succeeds. The stream stalls instead of skipping."""
        delay = 1.0
        attempt = 0
        while True:
            try:
                return call()
            except RETRYABLE_ERRORS as e:
                attempt += 1
                logger.warning(f"{description} failed (attempt {attempt}): {e}; retrying in {delay:.0f}s")
                self.sleep(delay)
                delay = min(delay * 2, self.max_retry_delay)
