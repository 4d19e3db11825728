"""
Tests for the HTTP API.

Read-only routes serve committed entity state; the internal routes ingest
events through the engine and require the internal API key.
"""
import pytest

from credora_indexer import config
from credora_indexer.models.events import EventType

from tests.factories import ALICE, LENDER, ORACLE, T0, EventSequence, make_event


HEADERS = {"X-Internal-Key": config.INTERNAL_API_KEY}


def _ingest(client, *events):
    return client.post(
        "/internal/events",
        json={"events": [e.to_dict() for e in events]},
        headers=HEADERS,
    )


@pytest.fixture
def indexed(client):
    """Mint, score update, grant + usage, oracle request and submission."""
    seq = EventSequence()
    events = [
        seq.mint(owner=ALICE, token_id=1),
        seq.score_updated(token_id=1, old=0, new=620),
        seq.grant(user=ALICE, protocol=LENDER, max_requests=100),
        seq.used(user=ALICE, protocol=LENDER, remaining=97),
        seq.oracle_added(oracle=ORACLE),
        seq.score_requested(user=ALICE, request_id=2 ** 128),
        seq.oracle_submitted(user=ALICE, oracle=ORACLE),
    ]
    response = _ingest(client, *events)
    assert response.status_code == 200
    return events


# =============================================================================
# TEST: INTERNAL ROUTES
# =============================================================================

class TestInternalRoutes:

    def test_ingest_requires_key(self, client):
        response = client.post("/internal/events", json={"events": []}, headers={"X-Internal-Key": "wrong"})
        assert response.status_code == 403

    def test_ingest_applies_and_reports_cursor(self, client):
        seq = EventSequence()
        events = [seq.mint(), seq.score_updated()]

        body = _ingest(client, *events).json()

        assert body["received"] == 2
        assert body["applied"] == 2
        assert body["duplicates"] == 0
        assert body["cursor"]["block_number"] == events[-1].block_number
        assert body["cursor"]["events_applied"] == 2

    def test_reingest_counts_duplicates(self, client, indexed):
        body = _ingest(client, *indexed).json()

        assert body["applied"] == 0
        assert body["duplicates"] == len(indexed)

    def test_malformed_event_rejected(self, client):
        response = client.post(
            "/internal/events",
            json={"events": [{"event_type": "ScoreMinted", "block_number": 1}]},
            headers=HEADERS,
        )
        assert response.status_code == 400

    def test_oversized_transaction_hash_rejected(self, client):
        event = make_event(EventType.ORACLE_ADDED, block_number=1, oracle=ORACLE).to_dict()
        event["transaction_hash"] += "ff"

        response = client.post("/internal/events", json={"events": [event]}, headers=HEADERS)

        assert response.status_code == 400
        assert client.get("/internal/status", headers=HEADERS).json()["events_applied"] == 0

    def test_strict_batch_rejects_out_of_order(self, client):
        later = make_event(EventType.ORACLE_ADDED, block_number=9, oracle=ORACLE)
        earlier = make_event(EventType.ORACLE_ADDED, block_number=3, oracle=ORACLE)

        response = client.post(
            "/internal/events",
            json={"events": [later.to_dict(), earlier.to_dict()], "strict": True},
            headers=HEADERS,
        )
        assert response.status_code == 400

    def test_status(self, client, indexed):
        response = client.get("/internal/status", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["block_number"] == indexed[-1].block_number
        assert response.json()["events_applied"] == len(indexed)

    def test_status_before_any_event(self, client):
        body = client.get("/internal/status", headers=HEADERS).json()

        assert body["block_number"] == -1
        assert body["events_applied"] == 0


# =============================================================================
# TEST: READ-ONLY ROUTES
# =============================================================================

class TestReadRoutes:

    def test_root_and_health(self, client):
        assert client.get("/").json()["name"] == "Credora Indexer"
        assert client.get("/health").json()["status"] == "healthy"

    def test_get_user(self, client, indexed):
        body = client.get(f"/users/{ALICE}").json()

        assert body["address"] == ALICE
        assert body["token_id"] == "1"
        assert body["has_active_sbt"] is True
        assert body["current_score"] == "620"
        assert body["active_permissions"] == 1

    def test_unprefixed_address_lookup(self, client, indexed):
        body = client.get(f"/users/{ALICE[2:]}").json()

        assert body["address"] == ALICE

    def test_unknown_user_404(self, client):
        assert client.get(f"/users/{ALICE}").status_code == 404

    def test_invalid_address_400(self, client):
        response = client.get("/users/not-an-address")

        assert response.status_code == 400
        assert "Not a valid address" in response.json()["detail"]

    def test_score_updates(self, client, indexed):
        body = client.get(f"/users/{ALICE}/score-updates", params={"limit": 10}).json()

        assert body["total"] == 1
        assert body["updates"][0]["new_score"] == "620"

    def test_score_updates_limit_validated(self, client):
        assert client.get(f"/users/{ALICE}/score-updates", params={"limit": 0}).status_code == 422
        assert client.get(f"/users/{ALICE}/score-updates", params={"limit": 1001}).status_code == 422

    def test_user_permissions(self, client, indexed):
        body = client.get(f"/users/{ALICE}/permissions").json()

        assert body["total"] == 1
        assert body["permissions"][0]["protocol"] == LENDER
        assert body["permissions"][0]["used_requests"] == "3"

    def test_user_score_requests(self, client, indexed):
        body = client.get(f"/users/{ALICE}/score-requests").json()

        assert body["requests"][0]["request_id"] == str(2 ** 128)
        assert body["requests"][0]["status"] == "FULFILLED"
        assert body["requests"][0]["fulfilled_by"] == ORACLE

        assert client.get(f"/users/{ALICE}/score-requests", params={"status": "pending"}).json()["total"] == 0
        assert client.get(f"/users/{ALICE}/score-requests", params={"status": "LOST"}).status_code == 400

    def test_score(self, client, indexed):
        body = client.get("/scores/1").json()

        assert body["owner"] == ALICE
        assert body["score"] == "620"
        assert body["update_count"] == 1
        assert client.get("/scores/2").status_code == 404

    def test_permission_and_usage(self, client, indexed):
        permission = client.get(f"/permissions/{ALICE}/{LENDER}").json()
        usage = client.get(f"/permissions/{ALICE}/{LENDER}/usage").json()

        assert permission["max_requests"] == "100"
        assert permission["is_active"] is True
        assert usage["total"] == 1
        assert usage["usages"][0]["remaining_requests"] == "97"

    def test_protocol_stats(self, client, indexed):
        body = client.get(f"/protocols/{LENDER}").json()

        assert body["total_permissions_received"] == 1
        assert body["active_permissions"] == 1
        assert body["total_access_used"] == 1

    def test_daily_stats(self, client, indexed):
        day = T0 // 86400
        body = client.get(f"/stats/daily/{day}").json()

        assert body["date"] == T0
        assert body["mint_count"] == 1
        assert body["update_count"] == 1
        assert body["permission_grant_count"] == 1
        assert body["access_usage_count"] == 1

        listing = client.get("/stats/daily", params={"start": day - 1, "end": day + 1}).json()
        assert listing["total"] == 1
        assert client.get(f"/stats/daily/{day + 1}").status_code == 404

    def test_daily_stats_range_validated(self, client):
        assert client.get("/stats/daily", params={"start": 10, "end": 5}).status_code == 400
        assert client.get("/stats/daily", params={"start": 0, "end": 1000}).status_code == 400

    def test_oracles(self, client, indexed):
        listing = client.get("/oracles").json()
        oracle = client.get(f"/oracles/{ORACLE}").json()

        assert listing["total"] == 1
        assert oracle["is_active"] is True
        assert oracle["updates_submitted"] == 1
