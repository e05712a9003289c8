"""
Tests for the health and event feed HTTP server

Probes report store reachability; /events serves committed envelopes
after a global position.
"""

import pytest

from aggregate_ledger import health_server
from aggregate_ledger.health_server import app, initialize_health_server
from aggregate_ledger.ledger import Ledger


@pytest.fixture
def client():
    """Flask test client"""
    app.config["TESTING"] = True
    with app.test_client() as client:
        yield client


@pytest.fixture
def served_ledger(temp_db, test_time):
    """Ledger with a few events, attached to the server"""
    ledger = Ledger(temp_db, time_provider=test_time)
    ledger.make_wish("alice", "bob@example.com", "a kite", wish_id="w1")
    ledger.propose_idea("Bike lanes", author="alice", idea_id="i1")
    ledger.rate_idea("i1", 5)
    initialize_health_server(temp_db, ledger)
    yield ledger
    health_server._db_path = None
    health_server._ledger = None


@pytest.fixture
def uninitialized():
    health_server._db_path = None
    health_server._ledger = None
    yield


def test_liveness_always_ok(client) -> None:
    response = client.get("/health/live")

    assert response.status_code == 200
    assert response.get_json()["status"] == "alive"


def test_readiness_without_database(client, uninitialized) -> None:
    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_path_not_initialized"


def test_readiness_with_missing_file(client, tmp_path) -> None:
    initialize_health_server(tmp_path / "absent.db")
    try:
        response = client.get("/health/ready")
    finally:
        health_server._db_path = None

    assert response.status_code == 503
    assert response.get_json()["reason"] == "database_file_not_found"


def test_readiness_reports_event_count(client, served_ledger) -> None:
    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.get_json()["event_count"] == 3


def test_detailed_health_includes_ledger(client, served_ledger) -> None:
    response = client.get("/health")
    data = response.get_json()

    assert response.status_code == 200
    assert data["database"]["stream_count"] == 2
    assert data["ledger"]["projection_position"] == 3
    assert data["ledger"]["channels"]["projections"]["lag"] == 0


class TestEventFeed:
    def test_feed_from_start(self, client, served_ledger) -> None:
        response = client.get("/events")
        envelopes = response.get_json()

        assert response.status_code == 200
        assert [e["position"] for e in envelopes] == [1, 2, 3]
        assert [e["eventType"] for e in envelopes] == ["WishMade", "IdeaProposed", "IdeaRated"]

    def test_feed_after_cursor_with_limit(self, client, served_ledger) -> None:
        response = client.get("/events?since=1&limit=1")

        assert [e["position"] for e in response.get_json()] == [2]

    def test_caught_up_returns_empty_list(self, client, served_ledger) -> None:
        response = client.get("/events?since=3")

        assert response.status_code == 200
        assert response.get_json() == []

    @pytest.mark.parametrize(
        "query",
        ["since=abc", "since=-1", "limit=0", "limit=1001", "limit=x"],
    )
    def test_bad_parameters_rejected(self, client, served_ledger, query) -> None:
        assert client.get(f"/events?{query}").status_code == 400

    def test_feed_without_ledger_reads_database(self, client, served_ledger, temp_db) -> None:
        initialize_health_server(temp_db)

        response = client.get("/events?since=2")

        assert [e["eventType"] for e in response.get_json()] == ["IdeaRated"]

    def test_feed_uninitialized(self, client, uninitialized) -> None:
        assert client.get("/events").status_code == 503
