from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient

from reloop.api.app import create_app
from reloop.ledger.registry import TransferNoteRegistry
from reloop.runtime import metrics


@pytest.fixture
def client(clock) -> TestClient:
    app = create_app(boot_registry=False)
    app.state.registry = TransferNoteRegistry(clock=clock)
    return TestClient(app)


def _mint(c: TestClient, batch_id: str = "DWTN-1", holder: str = "driver-1", **extra) -> dict:
    body = {
        "holder": holder,
        "batch_id": batch_id,
        "origin": "restaurant-1",
        "volume_liters": 100,
        "collection_location": "51.5074, -0.1278",
        "origin_details": '{"name": "Test Restaurant"}',
    }
    body.update(extra)
    r = c.post("/v1/notes", json=body)
    assert r.status_code == 201, r.text
    return r.json()


def test_mint_and_lookup(client: TestClient, clock) -> None:
    j = _mint(client, metadata_reference="https://ipfs.io/metadata/123")
    assert j["ok"] is True
    assert j["token_id"] == 0

    note = j["note"]
    assert note["batch_id"] == "DWTN-1"
    assert note["holder"] == "driver-1"
    assert note["collector"] == "driver-1"
    assert note["processor"] is None
    assert note["status"] == "Minted"
    assert note["collection_timestamp"] == clock.now
    assert note["delivery_timestamp"] is None
    assert note["collection_gps"] == {"lat": 51.5074, "lng": -0.1278}
    assert note["metadata_reference"] == "https://ipfs.io/metadata/123"
    assert note["verification_url"] == "https://genesisreloop.com/verify/DWTN-1"

    by_id = client.get("/v1/notes/0").json()["note"]
    by_batch = client.get("/v1/notes/by-batch/DWTN-1").json()["note"]
    assert by_id == by_batch == note


def test_mint_generates_batch_and_metadata(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELOOP_VERIFY_BASE_URL", "https://example.org/")
    r = client.post("/v1/notes", json={"holder": "driver-1", "origin": "restaurant-1", "volume_liters": 5})
    assert r.status_code == 201, r.text

    note = r.json()["note"]
    assert note["batch_id"].startswith("DWTN-")
    assert note["metadata_reference"] == f"https://example.org/metadata/{note['batch_id']}"


def test_mint_rejects_blank_batch_id(client: TestClient) -> None:
    r = client.post(
        "/v1/notes",
        json={"holder": "driver-1", "origin": "restaurant-1", "volume_liters": 5, "batch_id": "   "},
    )
    assert r.status_code == 400, r.text
    assert r.json()["error"]["code"] == "invalid_batch_id"
    assert client.get("/v1/notes/supply").json()["total_supply"] == 0


def test_error_mapping(client: TestClient) -> None:
    _mint(client)

    r = client.post(
        "/v1/notes", json={"holder": "driver-1", "batch_id": "DWTN-1", "origin": "restaurant-1", "volume_liters": 1}
    )
    assert r.status_code == 409
    assert r.json()["ok"] is False
    assert r.json()["error"]["code"] == "batch_exists"

    r = client.post(
        "/v1/notes", json={"holder": "driver-1", "batch_id": "DWTN-2", "origin": "restaurant-1", "volume_liters": 0}
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_volume"

    r = client.get("/v1/notes/42")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "token_not_found"

    r = client.get("/v1/notes/by-batch/missing")
    assert r.status_code == 404

    r = client.post("/v1/notes/0/delivery", json={"caller": "someone-else", "processor": "plant-1"})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "not_holder"
    assert client.get("/v1/notes/0").json()["note"]["status"] == "Minted"


def test_full_lifecycle_over_http(client: TestClient) -> None:
    _mint(client)

    r = client.post("/v1/notes/0/status", json={"caller": "driver-1", "status": "IN_TRANSIT"})
    assert r.status_code == 200, r.text
    assert r.json()["note"]["status"] == "InTransit"

    r = client.post(
        "/v1/notes/0/delivery",
        json={"caller": "driver-1", "processor": "plant-1", "delivery_location": "53.4808, -2.2426"},
    )
    assert r.status_code == 200, r.text
    note = r.json()["note"]
    assert note["status"] == "Delivered"
    assert note["processor"] == "plant-1"
    assert note["delivery_gps"] == {"lat": 53.4808, "lng": -2.2426}

    r = client.post("/v1/notes/0/verify", json={"caller": "plant-1", "verified": True})
    assert r.status_code == 200, r.text
    assert r.json()["note"]["status"] == "Verified"
    assert r.json()["note"]["verified"] is True

    r = client.post("/v1/notes/0/status", json={"caller": "plant-1", "status": 4})
    assert r.json()["note"]["status"] == "Completed"

    r = client.get("/v1/notes", params={"status": "completed"})
    assert r.json()["token_ids"] == [0]
    assert r.json()["status"] == "Completed"


def test_status_query_rejects_unknown_status(client: TestClient) -> None:
    r = client.get("/v1/notes", params={"status": "Lost"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_status"


def test_transfer_and_holder_listing(client: TestClient) -> None:
    _mint(client, "B1", holder="T1")
    _mint(client, "B2", holder="T1")

    r = client.post("/v1/notes/0/transfer", json={"caller": "T1", "to_holder": "T2"})
    assert r.status_code == 200, r.text
    assert r.json()["note"]["holder"] == "T2"

    assert client.get("/v1/holders/T1/notes").json()["token_ids"] == [1]
    assert client.get("/v1/holders/T2/notes").json()["token_ids"] == [0]
    assert client.get("/v1/holders/nobody/notes").json()["token_ids"] == []
    assert client.get("/v1/notes/supply").json()["total_supply"] == 2
    assert client.get("/v1/notes").json()["token_ids"] == [0, 1]


def test_events_feed_pages(client: TestClient) -> None:
    for i in range(3):
        _mint(client, f"B{i}")

    r = client.get("/v1/events", params={"limit": 2})
    j = r.json()
    assert [e["seq"] for e in j["events"]] == [1, 2]
    assert j["next_after_seq"] == 2
    assert j["last_seq"] == 3

    j = client.get("/v1/events", params={"after_seq": j["next_after_seq"]}).json()
    assert [e["kind"] for e in j["events"]] == ["note_minted"]
    assert j["events"][0]["fields"]["batch_id"] == "B2"

    r = client.get("/v1/events", params={"after_seq": "abc"})
    assert r.status_code == 400


def test_health_and_missing_registry() -> None:
    app = create_app(boot_registry=False)
    c = TestClient(app)

    r = c.get("/v1/health")
    assert r.status_code == 200
    assert r.json()["registry_ready"] is False

    r = c.get("/v1/notes/0")
    assert r.status_code == 500
    assert r.json()["error"]["code"] == "not_ready"


def test_request_size_limit_returns_413(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELOOP_MAX_REQUEST_BYTES", "128")
    app = create_app(boot_registry=False)
    app.state.registry = TransferNoteRegistry()
    c = TestClient(app)

    r = c.post(
        "/v1/notes",
        json={"holder": "d", "origin": "r", "volume_liters": 1, "origin_details": "x" * 500},
    )
    assert r.status_code == 413
    assert r.json()["error"]["code"] == "request_too_large"


def test_metrics_endpoint(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    assert client.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("RELOOP_METRICS_ENABLED", "1")
    metrics.reset()
    _mint(client)

    r = client.get("/v1/metrics")
    assert r.status_code == 200
    assert "reloop_notes_minted 1" in r.text
    assert "reloop_notes_total 1" in r.text
    assert "reloop_note_events_total 1" in r.text
    assert "reloop_notes_status_minted 1" in r.text
    assert "reloop_notes_status_delivered 0" in r.text


def test_metrics_gauges_follow_the_app_registry(client: TestClient, monkeypatch: pytest.MonkeyPatch, clock) -> None:
    monkeypatch.setenv("RELOOP_METRICS_ENABLED", "1")
    _mint(client)

    # Another registry in the same process must not leak into this app's gauges.
    other = TransferNoteRegistry(clock=clock)
    for i in range(3):
        other.mint(holder="d", batch_id=f"X{i}", origin="r", volume_liters=1)

    r = client.get("/v1/metrics")
    assert "reloop_notes_total 1" in r.text


def test_boot_registry_from_env(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELOOP_DB_PATH", str(tmp_path / "reloop.db"))

    c1 = TestClient(create_app(boot_registry=True))
    _mint(c1, "B1")

    c2 = TestClient(create_app(boot_registry=True))
    assert c2.get("/v1/notes/by-batch/B1").json()["note"]["token_id"] == 0


def test_request_log_carries_registry_seq(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="reloop.http")
    _mint(client)
    client.get("/v1/notes/0")

    lines = [json.loads(r.getMessage()) for r in caplog.records if r.name == "reloop.http"]
    assert [(j["method"], j["status"]) for j in lines] == [("POST", 201), ("GET", 200)]
    assert (lines[0]["seq_before"], lines[0]["seq_after"]) == (0, 1)
    assert (lines[1]["seq_before"], lines[1]["seq_after"]) == (1, 1)
    assert lines[0]["request_id"]
