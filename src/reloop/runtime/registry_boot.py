# src/reloop/runtime/registry_boot.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from reloop.ledger.registry import TransferNoteRegistry
from reloop.runtime.sqlite_db import SqliteDB, SqliteEventStore


def _as_bool(v: Optional[str], default: bool) -> bool:
    if v is None:
        return bool(default)
    s = v.strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class RegistryBootConfig:
    # Empty path keeps the registry in memory only.
    db_path: str
    strict_status: bool


def boot_config_from_env() -> RegistryBootConfig:
    return RegistryBootConfig(
        db_path=(os.environ.get("RELOOP_DB_PATH") or "").strip(),
        strict_status=_as_bool(os.environ.get("RELOOP_STRICT_STATUS"), False),
    )


def build_registry(cfg: Optional[RegistryBootConfig] = None) -> TransferNoteRegistry:
    """Build a TransferNoteRegistry from an explicit boot config or the environment.

    With a db_path the registry replays the SQLite event log and appends to it
    on every mutation.
    """
    c = cfg or boot_config_from_env()
    store = None
    if c.db_path:
        store = SqliteEventStore(db=SqliteDB(path=c.db_path))
    return TransferNoteRegistry(store=store, strict_status=c.strict_status)
