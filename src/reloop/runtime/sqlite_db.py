# src/reloop/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List

from reloop.ledger.events import NoteEvent

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Unknown types are not coerced: a non-JSON value in an event is a bug and
    must fail the write.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite manager for the registry event log.

    Design goals:
      - single durable DB file
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time. BEGIN IMMEDIATE can transiently
    fail with "database is locked", so write_tx() retries within a deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults:
          - prod -> FULL
          - dev  -> NORMAL

        Override with RELOOP_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("RELOOP_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("RELOOP_SQLITE_SYNCHRONOUS") or default).strip().upper()

        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("RELOOP_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("RELOOP_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("RELOOP_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS note_events (
                  seq INTEGER PRIMARY KEY,
                  kind TEXT NOT NULL,
                  token_id INTEGER NOT NULL,
                  ts INTEGER NOT NULL,
                  fields_json TEXT NOT NULL,
                  recorded_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_note_events_token ON note_events(token_id);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
        """
        deadline_ms = max(250, _env_int("RELOOP_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("RELOOP_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("RELOOP_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    time.sleep(sleep_s * (0.5 + random.random()))
                    attempt += 1

            try:
                yield con
                con.execute("COMMIT;")
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteEventStore:
    """Append-only registry event log persisted in SQLite.

    The registry state is never stored directly; it is rebuilt by replaying
    this log on boot.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    def append(self, event: NoteEvent) -> None:
        with self._db.write_tx() as con:
            row = con.execute("SELECT COALESCE(MAX(seq), 0) AS last FROM note_events;").fetchone()
            last = int(row["last"]) if row is not None else 0
            if int(event.seq) != last + 1:
                raise RuntimeError(f"event log out of sync: stored={last} appending={event.seq}")
            con.execute(
                """
                INSERT INTO note_events(seq, kind, token_id, ts, fields_json, recorded_ts_ms)
                VALUES(?, ?, ?, ?, ?, ?);
                """,
                (
                    int(event.seq),
                    str(event.kind),
                    int(event.token_id),
                    int(event.ts),
                    _canon_json(event.fields),
                    _now_ms(),
                ),
            )

    def load(self, after_seq: int = 0) -> List[NoteEvent]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT seq, kind, token_id, ts, fields_json FROM note_events WHERE seq > ? ORDER BY seq ASC;",
                (int(after_seq),),
            ).fetchall()

        out: List[NoteEvent] = []
        for r in rows:
            fields = json.loads(str(r["fields_json"]))
            if not isinstance(fields, dict):
                raise ValueError(f"note_events.fields_json is not a JSON object at seq={r['seq']}")
            out.append(
                NoteEvent.from_json(
                    {
                        "seq": int(r["seq"]),
                        "kind": str(r["kind"]),
                        "token_id": int(r["token_id"]),
                        "ts": int(r["ts"]),
                        "fields": fields,
                    }
                )
            )
        return out

    def count(self) -> int:
        with self._db.connection() as con:
            row = con.execute("SELECT COUNT(*) AS n FROM note_events;").fetchone()
            return int(row["n"]) if row is not None else 0
