from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from reloop.ledger.events import NoteEvent
from reloop.ledger.registry import TransferNoteRegistry
from reloop.ledger.types import NoteStatus
from reloop.runtime.errors import AlreadyExists
from reloop.runtime.registry_boot import RegistryBootConfig, boot_config_from_env, build_registry
from reloop.runtime.sqlite_db import SqliteDB, SqliteEventStore


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def _store(tmp_path: Path) -> SqliteEventStore:
    return SqliteEventStore(db=SqliteDB(path=str(tmp_path / "data" / "reloop.db")))


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RELOOP_MODE", "prod")
    monkeypatch.delenv("RELOOP_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("RELOOP_SQLITE_BUSY_TIMEOUT_MS", "1234")

    db = SqliteDB(path=str(tmp_path / "reloop.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"
        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2
        assert int(_pragma(con, "foreign_keys")) == 1
        assert int(_pragma(con, "busy_timeout")) == 1234


def test_registry_survives_restart(tmp_path: Path, clock) -> None:
    reg = TransferNoteRegistry(store=_store(tmp_path), clock=clock)
    reg.mint(holder="driver-1", batch_id="B1", origin="restaurant-1", volume_liters=42.5, collection_location="51.5, -0.1")
    reg.mint(holder="driver-1", batch_id="B2", origin="restaurant-2", volume_liters=7)
    reg.transfer("driver-1", 1, "driver-2")
    reg.record_delivery("driver-1", 0, processor="plant-1")
    reg.verify("plant-1", 0, True)

    reopened = TransferNoteRegistry(store=_store(tmp_path), clock=clock)

    assert reopened.total_supply() == 2
    assert reopened.get(0) == reg.get(0)
    assert reopened.get(1) == reg.get(1)
    assert reopened.get(0).status is NoteStatus.VERIFIED
    assert reopened.tokens_by_holder("driver-2") == [1]
    assert [e.to_json() for e in reopened.events()] == [e.to_json() for e in reg.events()]

    # Writes after reopening continue the same log.
    assert reopened.mint(holder="driver-3", batch_id="B3", origin="r", volume_liters=1) == 2
    assert _store(tmp_path).count() == 6


def test_rejected_operations_are_not_persisted(tmp_path: Path, clock) -> None:
    store = _store(tmp_path)
    reg = TransferNoteRegistry(store=store, clock=clock)
    reg.mint(holder="driver-1", batch_id="B1", origin="restaurant-1", volume_liters=1)

    with pytest.raises(AlreadyExists):
        reg.mint(holder="driver-1", batch_id="B1", origin="restaurant-1", volume_liters=1)

    assert store.count() == 1


def test_store_refuses_out_of_order_append(tmp_path: Path) -> None:
    store = _store(tmp_path)
    ev = NoteEvent(seq=2, kind="note_transferred", token_id=0, ts=1, fields={"from_holder": "a", "to_holder": "b"})
    with pytest.raises(RuntimeError):
        store.append(ev)
    assert store.count() == 0


def test_store_load_after_seq(tmp_path: Path, clock) -> None:
    store = _store(tmp_path)
    reg = TransferNoteRegistry(store=store, clock=clock)
    for i in range(4):
        reg.mint(holder="d", batch_id=f"B{i}", origin="r", volume_liters=1)

    assert [e.seq for e in store.load(after_seq=2)] == [3, 4]


def test_schema_version_mismatch_refuses_to_start(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "reloop.db"))
    db.init_schema()
    with db.write_tx() as con:
        con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")

    with pytest.raises(RuntimeError):
        db.init_schema()


def test_boot_config_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg = boot_config_from_env()
    assert cfg == RegistryBootConfig(db_path="", strict_status=False)

    monkeypatch.setenv("RELOOP_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("RELOOP_STRICT_STATUS", "yes")
    cfg = boot_config_from_env()
    assert cfg.db_path.endswith("x.db")
    assert cfg.strict_status is True

    reg = build_registry(cfg)
    assert reg.strict_status is True
    reg.mint(holder="d", batch_id="B1", origin="r", volume_liters=1)
    assert build_registry(cfg).total_supply() == 1
