from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from reloop.api.routes_public_parts.common import _note_payload, _registry
from reloop.api.schemas import DeliveryRequest, MintRequest, StatusUpdateRequest, TransferRequest, VerifyRequest
from reloop.ledger.types import NoteStatus
from reloop.util.batch import default_metadata_reference, generate_batch_id

router = APIRouter()

Json = Dict[str, Any]


@router.get("/notes")
def notes_by_status(request: Request, status: Optional[str] = None) -> Json:
    """List token ids by status, in creation order.

    Without a status this lists every token id.
    """
    reg = _registry(request)
    if status is None or not status.strip():
        return {"ok": True, "status": None, "token_ids": list(range(reg.total_supply()))}
    st = NoteStatus.parse(status)
    return {"ok": True, "status": st.label, "token_ids": reg.tokens_by_status(st)}


@router.get("/notes/supply")
def notes_supply(request: Request) -> Json:
    return {"ok": True, "total_supply": _registry(request).total_supply()}


@router.get("/notes/by-batch/{batch_id}")
def note_by_batch(batch_id: str, request: Request) -> Json:
    reg = _registry(request)
    note = reg.get_by_batch(batch_id)
    return _note_payload(reg, note.token_id)


@router.get("/notes/{token_id}")
def note_get(token_id: int, request: Request) -> Json:
    return _note_payload(_registry(request), token_id)


@router.post("/notes", status_code=201)
def note_mint(body: MintRequest, request: Request) -> Json:
    """Issue a new transfer note.

    batch_id and metadata_reference are generated when the client omits them.
    """
    reg = _registry(request)
    batch_id = generate_batch_id() if body.batch_id is None else body.batch_id
    metadata_reference = body.metadata_reference
    if metadata_reference is None:
        metadata_reference = default_metadata_reference(batch_id)

    token_id = reg.mint(
        holder=body.holder,
        batch_id=batch_id,
        origin=body.origin,
        volume_liters=body.volume_liters,
        collection_location=body.collection_location,
        origin_details=body.origin_details,
        metadata_reference=metadata_reference,
    )
    out = _note_payload(reg, token_id)
    out["token_id"] = token_id
    return out


@router.post("/notes/{token_id}/status")
def note_update_status(token_id: int, body: StatusUpdateRequest, request: Request) -> Json:
    reg = _registry(request)
    reg.update_status(body.caller, token_id, body.status)
    return _note_payload(reg, token_id)


@router.post("/notes/{token_id}/delivery")
def note_record_delivery(token_id: int, body: DeliveryRequest, request: Request) -> Json:
    reg = _registry(request)
    reg.record_delivery(
        body.caller,
        token_id,
        processor=body.processor,
        delivery_location=body.delivery_location,
        processor_details=body.processor_details,
    )
    return _note_payload(reg, token_id)


@router.post("/notes/{token_id}/verify")
def note_verify(token_id: int, body: VerifyRequest, request: Request) -> Json:
    reg = _registry(request)
    reg.verify(body.caller, token_id, body.verified)
    return _note_payload(reg, token_id)


@router.post("/notes/{token_id}/transfer")
def note_transfer(token_id: int, body: TransferRequest, request: Request) -> Json:
    reg = _registry(request)
    reg.transfer(body.caller, token_id, body.to_holder)
    return _note_payload(reg, token_id)


@router.get("/holders/{holder}/notes")
def holder_notes(holder: str, request: Request) -> Json:
    reg = _registry(request)
    return {"ok": True, "holder": holder, "token_ids": reg.tokens_by_holder(holder)}
