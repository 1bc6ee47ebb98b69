from datetime import datetime, timedelta, timezone

import pytest

from backend.valveflow import config
from backend.valveflow.service import create_app
from backend.valveflow.stores import InMemoryStore

from conftest import rows


@pytest.fixture
def client_and_store():
    store = InMemoryStore()
    base = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(hours=2)
    store.add_valve_rows(rows((0, 8), (10, 0), base=base))
    store.add_flow_rows(rows((-3, 0.2), (4, 1.8), (6, 1.9), base=base))
    app = create_app(store)
    app.config["TESTING"] = True
    return app.test_client(), store


def test_health(client_and_store):
    client, _ = client_and_store
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "OK"


def test_reconcile_then_score(client_and_store):
    client, store = client_and_store

    resp = client.post("/reconcile", json={"lookback_hours": 6})
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "processed"
    assert body["report"]["accepted"] == 1
    assert len(store.points(config.FLOW_SERIES)) == 2

    resp = client.post("/score", json={"windows_days": [7]})
    assert resp.status_code == 200
    [score] = resp.get_json()["scores"]
    assert score["valve"] == 8
    assert score["window"] == "7d"
    assert score["composite_score"] == 0.0


def test_reconcile_rejects_bad_lookback(client_and_store):
    client, _ = client_and_store
    resp = client.post("/reconcile", json={"lookback_hours": "soon"})
    assert resp.status_code == 400


def test_reconcile_with_no_events_reports_abort():
    client = create_app(InMemoryStore()).test_client()
    resp = client.post("/reconcile")
    assert resp.get_json()["status"] == "aborted"


@pytest.mark.parametrize("route", ["/reconcile", "/score"])
def test_non_object_body_is_rejected(client_and_store, route):
    client, store = client_and_store
    resp = client.post(route, json=[1])
    assert resp.status_code == 400
    assert store.write_calls == 0


def test_score_rejects_windows_given_as_string(client_and_store):
    client, store = client_and_store
    resp = client.post("/score", json={"windows_days": "730"})
    assert resp.status_code == 400
    assert "windows_days" in resp.get_json()["error"]
    assert store.write_calls == 0
