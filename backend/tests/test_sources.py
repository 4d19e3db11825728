"""
Tests for event sources.

- InMemoryEventSource: canonical ordering, strict mode, dict ingest
- Contract ABI bindings: topic routing
- Web3EventSource: block windows, finality buffer, log decoding, RPC retries
  (web3 connection mocked)
"""
import pytest
import requests
from unittest.mock import MagicMock, PropertyMock

from credora_indexer.errors import InvalidEventError
from credora_indexer.models.events import EventType, SourceContract
from credora_indexer.services.source import InMemoryEventSource, Web3EventSource
from credora_indexer.services.source.abis import (
    EVENT_BINDINGS,
    SCORE_SBT_EVENTS,
    event_signature,
    event_topic,
    topic_index,
)

from tests.factories import ALICE, LENDER, ORACLE, T0, make_event, tx_hash


SBT_ADDRESS = "0x" + "5b" * 20
PM_ADDRESS = "0x" + "7e" * 20
ORACLE_CONTRACT = "0x" + "9c" * 20


# =============================================================================
# TEST: IN-MEMORY SOURCE
# =============================================================================

class TestInMemoryEventSource:

    def test_events_are_sorted_by_position(self):
        late = make_event(EventType.ORACLE_ADDED, block_number=9, log_index=0, oracle=ORACLE)
        early = make_event(EventType.ORACLE_ADDED, block_number=3, log_index=4, oracle=ORACLE)
        earlier = make_event(EventType.ORACLE_ADDED, block_number=3, log_index=1, oracle=ORACLE)

        source = InMemoryEventSource([late, early, earlier])

        assert [e.position for e in source] == [(3, 1), (3, 4), (9, 0)]
        assert len(source) == 3

    def test_strict_rejects_out_of_order(self):
        late = make_event(EventType.ORACLE_ADDED, block_number=9, oracle=ORACLE)
        early = make_event(EventType.ORACLE_ADDED, block_number=3, oracle=ORACLE)

        with pytest.raises(InvalidEventError):
            InMemoryEventSource([late, early], strict=True)

    def test_strict_allows_redelivery(self):
        event = make_event(EventType.ORACLE_ADDED, block_number=3, oracle=ORACLE)

        assert len(InMemoryEventSource([event, event], strict=True)) == 2

    def test_from_dicts(self):
        source = InMemoryEventSource.from_dicts([
            make_event(EventType.ACCESS_USED, block_number=2, user=ALICE, protocol=LENDER,
                       remaining_requests=1).to_dict(),
            make_event(EventType.ORACLE_ADDED, block_number=1, oracle=ORACLE).to_dict(),
        ])

        assert [e.event_type for e in source] == [EventType.ORACLE_ADDED, EventType.ACCESS_USED]


# =============================================================================
# TEST: ABI BINDINGS
# =============================================================================

class TestAbiBindings:

    def test_signatures_are_canonical(self):
        abis = {abi["name"]: abi for abi in SCORE_SBT_EVENTS}

        assert event_signature(abis["Transfer"]) == "Transfer(address,address,uint256)"
        assert event_signature(abis["ScoreUpdated"]) == \
            "ScoreUpdated(uint256,uint256,uint256,uint256,address)"

    def test_erc721_transfer_topic(self):
        transfer = next(abi for abi in SCORE_SBT_EVENTS if abi["name"] == "Transfer")

        assert event_topic(transfer) == \
            "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

    def test_every_binding_is_routable(self):
        index = topic_index()

        assert len(index) == len(EVENT_BINDINGS)
        assert {b.event_type for b in index.values()} == set(EventType)

    def test_same_event_name_on_two_contracts(self):
        routed = {
            (contract, binding.event_type)
            for (contract, _), binding in topic_index().items()
            if binding.abi_name == "ScoreUpdated"
        }

        assert routed == {
            (SourceContract.SCORE_SBT, EventType.SCORE_UPDATED),
            (SourceContract.SCORE_ORACLE, EventType.ORACLE_SCORE_SUBMITTED),
        }


# =============================================================================
# TEST: WEB3 SOURCE
# =============================================================================

def _topic_bytes(contract, abi_name):
    for (c, topic), binding in topic_index().items():
        if c == contract and binding.abi_name == abi_name:
            return bytes.fromhex(topic[2:])
    raise KeyError(abi_name)


def _raw_log(address, contract, abi_name, block_number, log_index):
    return {
        "address": address,
        "topics": [_topic_bytes(contract, abi_name)],
        "blockNumber": block_number,
        "logIndex": log_index,
        "transactionHash": bytes.fromhex(tx_hash(block_number, log_index)[2:]),
        "data": b"",
    }


def _decoded(raw, args):
    return {
        "args": args,
        "blockNumber": raw["blockNumber"],
        "logIndex": raw["logIndex"],
        "transactionHash": raw["transactionHash"],
    }


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.block_number = 120
    w3.eth.get_block.side_effect = lambda number: {"timestamp": T0 + number * 12}
    w3.eth.get_logs.return_value = []
    return w3


def _source(w3, **kwargs):
    options = dict(start_block=100, block_stride=5, confirmations=12, follow=False, sleep=lambda seconds: None)
    options.update(kwargs)
    return Web3EventSource(
        w3,
        {
            SourceContract.SCORE_SBT: SBT_ADDRESS,
            SourceContract.PERMISSION_MANAGER: PM_ADDRESS,
            SourceContract.SCORE_ORACLE: ORACLE_CONTRACT,
        },
        **options
    )


class TestWeb3EventSource:

    def test_requires_contracts(self, w3):
        with pytest.raises(ValueError):
            Web3EventSource(w3, {})

    def test_reads_windows_up_to_safe_head(self, w3):
        list(_source(w3))

        windows = [
            (call.args[0]["fromBlock"], call.args[0]["toBlock"])
            for call in w3.eth.get_logs.call_args_list
        ]
        # latest 120 - 12 confirmations = safe head 108
        assert windows == [(100, 104), (105, 108)]

    def test_nothing_read_when_behind_finality(self, w3):
        w3.eth.block_number = 105

        assert list(_source(w3)) == []
        w3.eth.get_logs.assert_not_called()

    def test_follow_polls_until_head_advances(self, w3):
        type(w3.eth).block_number = PropertyMock(side_effect=[110, 112, 114])
        sleeps = []

        source = _source(w3, start_block=100, block_stride=10, follow=True, poll_interval=3.0, sleep=sleeps.append)
        stream = iter(source)
        w3.eth.get_logs.side_effect = [[], [
            _raw_log(ORACLE_CONTRACT, SourceContract.SCORE_ORACLE, "OracleAdded", 101, 0)
        ]]
        source.contracts[SourceContract.SCORE_ORACLE].events.OracleAdded.return_value.process_log.side_effect = \
            lambda raw: _decoded(raw, {"oracle": ORACLE})

        # safe heads: 98 (behind, poll), 100 (empty window), 102 (log at 101)
        event = next(stream)

        assert event.event_type == EventType.ORACLE_ADDED
        assert sleeps == [3.0]

    def test_decodes_and_orders_logs(self, w3):
        source = _source(w3, start_block=100, block_stride=50)
        raw_used = _raw_log(PM_ADDRESS, SourceContract.PERMISSION_MANAGER, "AccessUsed", 103, 2)
        raw_mint = _raw_log(SBT_ADDRESS, SourceContract.SCORE_SBT, "ScoreMinted", 103, 0)
        w3.eth.get_logs.return_value = [raw_used, raw_mint]

        events_api = source.contracts[SourceContract.SCORE_SBT].events
        events_api.ScoreMinted.return_value.process_log.return_value = _decoded(
            raw_mint, {"owner": "0x" + "A1" * 20, "tokenId": 1}
        )
        source.contracts[SourceContract.PERMISSION_MANAGER].events.AccessUsed.return_value.process_log.return_value = \
            _decoded(raw_used, {"user": ALICE, "protocol": LENDER, "remainingRequests": 97})

        events = list(source)

        assert [e.event_type for e in events] == [EventType.SCORE_MINTED, EventType.ACCESS_USED]
        mint, used = events
        assert mint.params.owner == ALICE
        assert mint.timestamp == T0 + 103 * 12
        assert mint.transaction_hash == tx_hash(103, 0)
        assert mint.contract == SourceContract.SCORE_SBT.value
        assert used.params.remaining_requests == 97
        # one block lookup for both logs
        w3.eth.get_block.assert_called_once_with(103)

    def test_unknown_topics_and_addresses_are_ignored(self, w3):
        source = _source(w3)
        unknown_topic = _raw_log(SBT_ADDRESS, SourceContract.SCORE_SBT, "ScoreMinted", 101, 0)
        unknown_topic["topics"] = [bytes(32)]
        foreign = _raw_log("0x" + "99" * 20, SourceContract.SCORE_SBT, "ScoreMinted", 101, 1)

        assert source.decode_log(unknown_topic) is None
        assert source.decode_log(foreign) is None

    def test_rpc_failure_retries_same_window(self, w3):
        sleeps = []
        w3.eth.get_logs.side_effect = [requests.exceptions.ConnectionError("node down"), [], []]

        list(_source(w3, sleep=sleeps.append))

        windows = [
            (call.args[0]["fromBlock"], call.args[0]["toBlock"])
            for call in w3.eth.get_logs.call_args_list
        ]
        assert windows == [(100, 104), (100, 104), (105, 108)]
        assert sleeps == [1.0]

    def test_retry_backoff_is_capped(self, w3):
        sleeps = []
        failures = [TimeoutError("slow")] * 8
        w3.eth.get_logs.side_effect = failures + [[], []]

        list(_source(w3, sleep=sleeps.append, max_retry_delay=10.0))

        assert sleeps == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0, 10.0, 10.0]

    def test_event_from_decoded_maps_oracle_submission(self):
        binding = next(b for b in EVENT_BINDINGS if b.event_type == EventType.ORACLE_SCORE_SUBMITTED)
        decoded = {
            "args": {
                "user": ALICE,
                "score": 712,
                "calculationHash": bytes.fromhex("cd" * 32),
                "oracle": ORACLE,
                "timestamp": T0 + 5,
            },
            "blockNumber": 200,
            "logIndex": 3,
            "transactionHash": bytes.fromhex(tx_hash(200, 3)[2:]),
        }

        event = Web3EventSource.event_from_decoded(binding, decoded, T0 + 9)

        assert event.event_type == EventType.ORACLE_SCORE_SUBMITTED
        assert event.timestamp == T0 + 9
        assert event.params.score == 712
        assert event.params.calculation_hash == "0x" + "cd" * 32
        assert event.params.submitted_at == T0 + 5
