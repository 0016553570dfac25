from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from reloop.api.errors import ApiError
from reloop.ledger.registry import TransferNoteRegistry
from reloop.util.batch import verification_url

Json = Dict[str, Any]


def _registry(request: Request) -> TransferNoteRegistry:
    reg = getattr(request.app.state, "registry", None)
    if reg is None:
        raise ApiError.internal("not_ready", "registry not attached to app.state", {})
    return reg


def _int_param(v: Any, default: int) -> int:
    """Parse an int-ish query param safely."""
    if v is None:
        return int(default)
    s = str(v).strip()
    if s == "":
        return int(default)
    try:
        return int(s)
    except ValueError:
        raise ApiError.bad_request("invalid_param", "expected an integer", {"value": s}) from None


def _note_payload(reg: TransferNoteRegistry, token_id: int) -> Json:
    note = reg.note_json(token_id)
    note["verification_url"] = verification_url(note["batch_id"])
    return {"ok": True, "note": note}
