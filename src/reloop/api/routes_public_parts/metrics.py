from __future__ import annotations

from fastapi import APIRouter, Request, Response

from reloop.ledger.types import NoteStatus
from reloop.runtime.metrics import format_prometheus, metrics_enabled, set_gauge


router = APIRouter()


def _refresh_registry_gauges(request: Request) -> None:
    reg = getattr(request.app.state, "registry", None)
    if reg is None:
        return
    set_gauge("notes_total", reg.total_supply())
    set_gauge("note_events_total", reg.last_seq())
    for st in NoteStatus:
        set_gauge(f"notes_status_{st.name.lower()}", len(reg.tokens_by_status(st)))


@router.get("/metrics")
def metrics(request: Request) -> Response:
    """Prometheus-style metrics for the transfer-note registry.

    Counters track mutations since process start (notes_minted,
    notes_delivered, ...). Gauges are read from this app's registry at scrape
    time: notes_total, note_events_total and notes_status_<status>.

    Disabled by default. Enable with RELOOP_METRICS_ENABLED=1.
    """
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    _refresh_registry_gauges(request)
    return Response(content=format_prometheus(), media_type="text/plain")
