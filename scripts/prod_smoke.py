#!/usr/bin/env python3

"""Production-ish smoke test for the transfer-note API.

It verifies:
  - the registry boots on a fresh SQLite db
  - FastAPI app boots and serves /v1/health
  - a full mint -> delivery -> verify lifecycle succeeds over HTTP
  - a second app on the same db replays the event log to the same state

Usage:
  python3 scripts/prod_smoke.py
"""

from __future__ import annotations

import os
import tempfile

from fastapi.testclient import TestClient

from reloop.api.app import create_app


def main() -> int:
    with tempfile.TemporaryDirectory(prefix="reloop-smoke-") as td:
        os.environ["RELOOP_DB_PATH"] = os.path.join(td, "reloop.db")
        os.environ.setdefault("RELOOP_MODE", "dev")

        c = TestClient(create_app(boot_registry=True))

        r = c.get("/v1/health")
        assert r.status_code == 200, r.text
        assert bool(r.json().get("ok")) is True

        r = c.post(
            "/v1/notes",
            json={
                "holder": "driver-1",
                "origin": "restaurant-1",
                "volume_liters": 120.5,
                "collection_location": "51.5074, -0.1278",
            },
        )
        assert r.status_code == 201, r.text
        token_id = int(r.json()["token_id"])

        r = c.post(
            f"/v1/notes/{token_id}/delivery",
            json={"caller": "driver-1", "processor": "plant-1", "delivery_location": "51.50, -0.12"},
        )
        assert r.status_code == 200, r.text

        r = c.post(f"/v1/notes/{token_id}/verify", json={"caller": "plant-1", "verified": True})
        assert r.status_code == 200, r.text
        before = r.json()["note"]
        assert before["status"] == "Verified"

        # Fresh app on the same db: state must come back from the event log.
        c2 = TestClient(create_app(boot_registry=True))
        after = c2.get(f"/v1/notes/{token_id}").json()["note"]
        if after != before:
            raise RuntimeError(f"replayed note differs: before={before} after={after}")

        print("OK: health + lifecycle + replay", {"token_id": token_id, "batch_id": after["batch_id"]})
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
