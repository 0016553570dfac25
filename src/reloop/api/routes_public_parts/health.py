from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    reg = getattr(request.app.state, "registry", None)
    return {
        "ok": True,
        "registry_ready": reg is not None,
        "total_supply": reg.total_supply() if reg is not None else 0,
        "last_seq": reg.last_seq() if reg is not None else 0,
    }
