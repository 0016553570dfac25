from __future__ import annotations

import os
import secrets
import time
from urllib.parse import quote

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"

DEFAULT_BASE_URL = "https://genesisreloop.com"


def _base_url() -> str:
    raw = (os.environ.get("RELOOP_VERIFY_BASE_URL") or "").strip()
    return (raw or DEFAULT_BASE_URL).rstrip("/")


def generate_batch_id(now_ms: int | None = None) -> str:
    """Batch ids look like DWTN-<ms timestamp>-<9 base36 chars>."""
    ts = int(now_ms) if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(secrets.choice(_B36) for _ in range(9))
    return f"DWTN-{ts}-{suffix}"


def default_metadata_reference(batch_id: str) -> str:
    return f"{_base_url()}/metadata/{quote(batch_id, safe='')}"


def verification_url(batch_id: str) -> str:
    return f"{_base_url()}/verify/{quote(batch_id, safe='')}"
