"""
Tests for the indexer runner script.

The web3 source is replaced with in-memory stand-ins; the runner must turn
indexer errors into a failed exit instead of a traceback.
"""
import logging

import pytest

from credora_indexer.errors import InvalidEventError
from scripts import run_indexer

from tests.factories import ORACLE


class _UndecodableSource:
    def __iter__(self):
        raise InvalidEventError("Cannot decode OracleAdded log at block 101: bad data")
        yield


@pytest.fixture
def runner(monkeypatch, session_factory):
    monkeypatch.setattr(run_indexer, "init_db", lambda: None)
    monkeypatch.setattr(run_indexer, "SessionLocal", session_factory)
    return run_indexer


class TestRunner:

    def test_resume_block_defaults_to_start_block(self, indexer, monkeypatch):
        monkeypatch.setattr(run_indexer.config, "START_BLOCK", 42)

        assert run_indexer.resume_block(indexer) == 42

    def test_resume_block_uses_cursor(self, seq, apply_events, indexer):
        apply_events(seq.oracle_added(ORACLE))

        assert run_indexer.resume_block(indexer) == 101

    def test_undecodable_log_fails_run(self, runner, monkeypatch, caplog):
        monkeypatch.setattr(
            runner.Web3EventSource, "from_config", classmethod(lambda cls, **kwargs: _UndecodableSource())
        )

        with caplog.at_level(logging.ERROR):
            assert runner.run(follow=False) is False

        assert "Indexer aborted after (-1, -1)" in caplog.text
        assert "block 101" in caplog.text

    def test_clean_run_succeeds(self, runner, monkeypatch, seq):
        events = [seq.oracle_added(ORACLE)]
        monkeypatch.setattr(runner.Web3EventSource, "from_config", classmethod(lambda cls, **kwargs: events))

        assert runner.run(follow=False) is True
