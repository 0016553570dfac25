from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from reloop.api.routes_public_parts.common import _int_param, _registry

router = APIRouter()

Json = Dict[str, Any]

_MAX_LIMIT = 1000


@router.get("/events")
def events_feed(request: Request, after_seq: Optional[str] = None, limit: Optional[str] = None) -> Json:
    """Event feed for external indexers.

    Clients page with after_seq = next_after_seq until `events` is empty.
    """
    reg = _registry(request)
    after = max(0, _int_param(after_seq, 0))
    lim = min(_MAX_LIMIT, max(1, _int_param(limit, 100)))

    evs = reg.events(after_seq=after, limit=lim)
    next_after = evs[-1].seq if evs else after
    return {
        "ok": True,
        "events": [e.to_json() for e in evs],
        "next_after_seq": next_after,
        "last_seq": reg.last_seq(),
    }
