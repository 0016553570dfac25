from __future__ import annotations

"""reloop.ledger.registry

Waste-transfer-note registry.

Key invariants:
  - token ids are assigned sequentially from 0 and never reused
  - batch ids are globally unique
  - processor stays null until delivery is recorded, then never changes
  - every token sits in exactly one holder set
  - records are never deleted

Every mutation validates first, then builds a NoteEvent, persists it (when a
store is attached) and only then applies it in memory. Replay goes through
the same apply path, so a registry rebuilt from its event log is identical
to the one that wrote it.
"""

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from reloop.ledger.events import (
    NOTE_DELIVERED,
    NOTE_MINTED,
    NOTE_STATUS_UPDATED,
    NOTE_TRANSFERRED,
    NOTE_VERIFIED,
    NoteEvent,
)
from reloop.ledger.holder_index import HolderIndex
from reloop.ledger.types import (
    NULL_IDENTITY,
    NoteStatus,
    TransferNote,
    as_volume,
    normalize_identity,
)
from reloop.runtime.errors import AlreadyExists, InvalidArgument, NotFound, Unauthorized
from reloop.runtime.event_logging import log_event
from reloop.runtime.metrics import inc_counter, set_gauge

Json = Dict[str, Any]
Listener = Callable[[NoteEvent], None]

log = logging.getLogger("reloop.registry")


class EventStore(Protocol):
    def append(self, event: NoteEvent) -> None: ...

    def load(self, after_seq: int = 0) -> List[NoteEvent]: ...


def _now_s() -> int:
    return int(time.time())


def _as_text(v: Any) -> str:
    return "" if v is None else str(v)


class TransferNoteRegistry:
    """Append-mostly store of transfer notes keyed by token id and batch id.

    Single-writer: one RLock serializes mutations and guards reads, so a
    reader always sees either the state before or after a mutation.
    """

    def __init__(
        self,
        *,
        store: Optional[EventStore] = None,
        clock: Optional[Callable[[], int]] = None,
        strict_status: bool = False,
    ) -> None:
        self._lock = threading.RLock()
        self._notes: List[TransferNote] = []
        self._by_batch: Dict[str, int] = {}
        self._index = HolderIndex()
        self._events: List[NoteEvent] = []
        self._listeners: List[Listener] = []
        self._clock = clock or _now_s
        self._strict_status = bool(strict_status)
        self._store = None

        if store is not None:
            for ev in store.load():
                self._apply(ev)
            self._index.check()
        self._store = store

        set_gauge("notes_total", len(self._notes))

    @classmethod
    def from_events(cls, events: Iterable[Any], **kwargs: Any) -> "TransferNoteRegistry":
        """Rebuild a registry by replaying an event log (objects or JSON dicts)."""
        reg = cls(**kwargs)
        with reg._lock:
            for ev in events:
                reg._apply(NoteEvent.from_json(ev))
            reg._index.check()
        return reg

    @property
    def strict_status(self) -> bool:
        return self._strict_status

    def subscribe(self, fn: Listener) -> None:
        with self._lock:
            self._listeners.append(fn)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def mint(
        self,
        holder: str,
        batch_id: str,
        origin: str,
        volume_liters: Any,
        collection_location: str = "",
        origin_details: str = "",
        metadata_reference: str = "",
    ) -> int:
        bid = _as_text(batch_id).strip()
        if not bid:
            raise InvalidArgument("invalid_batch_id", "batch_id must be non-empty", {})
        org = normalize_identity(origin)
        if org == NULL_IDENTITY:
            raise InvalidArgument("null_identity", "origin must not be the null identity", {"field": "origin"})
        hold = normalize_identity(holder)
        if hold == NULL_IDENTITY:
            raise InvalidArgument("null_identity", "holder must not be the null identity", {"field": "holder"})
        vol = as_volume(volume_liters)

        with self._lock:
            if bid in self._by_batch:
                raise AlreadyExists(
                    "batch_exists",
                    "batch_id already registered",
                    {"batch_id": bid, "token_id": self._by_batch[bid]},
                )

            token_id = len(self._notes)
            now = int(self._clock())
            self._commit(
                NOTE_MINTED,
                token_id,
                now,
                {
                    "holder": hold,
                    "batch_id": bid,
                    "origin": org,
                    "collector": hold,
                    "volume_liters": vol,
                    "collection_timestamp": now,
                    "collection_location": _as_text(collection_location),
                    "origin_details": _as_text(origin_details),
                    "metadata_reference": _as_text(metadata_reference),
                    "status": NoteStatus.MINTED.label,
                },
            )
            inc_counter("notes_minted")
            return token_id

    def update_status(self, caller: str, token_id: int, new_status: Any) -> NoteStatus:
        """Overwrite a note's status.

        Any enumerated status is accepted unless the registry runs in strict
        mode, where only moves to a later status are allowed.
        """
        who = normalize_identity(caller)
        new = NoteStatus.parse(new_status)

        with self._lock:
            note = self._require(token_id)
            holder = self._index.holder_of(note.token_id)
            if who == NULL_IDENTITY or (who != holder and who != note.processor):
                raise Unauthorized(
                    "not_holder_or_processor",
                    "caller must be the current holder or the processor",
                    {"token_id": note.token_id, "caller": who},
                )

            old = note.status
            if new <= old and self._strict_status:
                raise InvalidArgument(
                    "status_not_forward",
                    "status may only move forward",
                    {"token_id": note.token_id, "old_status": old.label, "new_status": new.label},
                )
            if new < old:
                log_event(
                    log,
                    "note_status_regression",
                    level=logging.WARNING,
                    token_id=note.token_id,
                    old_status=old.label,
                    new_status=new.label,
                    caller=who,
                )

            self._commit(
                NOTE_STATUS_UPDATED,
                note.token_id,
                int(self._clock()),
                {"old_status": old.label, "new_status": new.label},
            )
            inc_counter("notes_status_updated")
            return new

    def record_delivery(
        self,
        caller: str,
        token_id: int,
        processor: str,
        delivery_location: str = "",
        processor_details: str = "",
    ) -> TransferNote:
        who = normalize_identity(caller)
        proc = normalize_identity(processor)

        with self._lock:
            note = self._require(token_id)
            holder = self._index.holder_of(note.token_id)
            if who == NULL_IDENTITY or who != holder:
                raise Unauthorized(
                    "not_holder",
                    "caller must be the current holder",
                    {"token_id": note.token_id, "caller": who},
                )
            if proc == NULL_IDENTITY:
                raise InvalidArgument(
                    "null_identity", "processor must not be the null identity", {"field": "processor"}
                )
            if note.delivered:
                raise InvalidArgument(
                    "already_delivered",
                    "delivery already recorded",
                    {"token_id": note.token_id, "processor": note.processor},
                )

            now = int(self._clock())
            self._commit(
                NOTE_DELIVERED,
                note.token_id,
                now,
                {
                    "processor": proc,
                    "delivery_timestamp": now,
                    "delivery_location": _as_text(delivery_location),
                    "processor_details": _as_text(processor_details),
                    "status": NoteStatus.DELIVERED.label,
                },
            )
            inc_counter("notes_delivered")
            return self._notes[note.token_id]

    def verify(self, caller: str, token_id: int, verified: bool) -> TransferNote:
        who = normalize_identity(caller)

        with self._lock:
            note = self._require(token_id)
            if who == NULL_IDENTITY or who != note.processor:
                raise Unauthorized(
                    "not_processor",
                    "caller must be the note's processor",
                    {"token_id": note.token_id, "caller": who},
                )

            ok = bool(verified)
            status = NoteStatus.VERIFIED if ok else note.status
            self._commit(
                NOTE_VERIFIED,
                note.token_id,
                int(self._clock()),
                {"processor": note.processor, "verified": ok, "status": status.label},
            )
            inc_counter("notes_verified" if ok else "notes_verification_rejected")
            return self._notes[note.token_id]

    def transfer(self, caller: str, token_id: int, to_holder: str) -> None:
        who = normalize_identity(caller)
        dest = normalize_identity(to_holder)

        with self._lock:
            note = self._require(token_id)
            holder = self._index.holder_of(note.token_id)
            if who == NULL_IDENTITY or who != holder:
                raise Unauthorized(
                    "not_holder",
                    "caller must be the current holder",
                    {"token_id": note.token_id, "caller": who},
                )
            if dest == NULL_IDENTITY:
                raise InvalidArgument(
                    "null_identity", "transfer target must not be the null identity", {"field": "to_holder"}
                )

            self._commit(
                NOTE_TRANSFERRED,
                note.token_id,
                int(self._clock()),
                {"from_holder": holder, "to_holder": dest},
            )
            inc_counter("notes_transferred")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, token_id: int) -> TransferNote:
        with self._lock:
            return self._require(token_id)

    def get_by_batch(self, batch_id: str) -> TransferNote:
        bid = _as_text(batch_id).strip()
        with self._lock:
            tid = self._by_batch.get(bid)
            if tid is None:
                raise NotFound("batch_not_found", "unknown batch_id", {"batch_id": bid})
            return self._notes[tid]

    def holder_of(self, token_id: int) -> str:
        with self._lock:
            note = self._require(token_id)
            return self._index.holder_of(note.token_id) or NULL_IDENTITY

    def tokens_by_holder(self, holder: str) -> List[int]:
        h = normalize_identity(holder)
        with self._lock:
            if h == NULL_IDENTITY:
                return []
            return self._index.tokens_of(h)

    def tokens_by_status(self, status: Any) -> List[int]:
        st = NoteStatus.parse(status)
        with self._lock:
            return [n.token_id for n in self._notes if n.status == st]

    def total_supply(self) -> int:
        with self._lock:
            return len(self._notes)

    def events(self, after_seq: int = 0, limit: Optional[int] = None) -> List[NoteEvent]:
        start = max(0, int(after_seq))
        with self._lock:
            out = self._events[start:]
        if limit is not None:
            out = out[: max(0, int(limit))]
        return out

    def last_seq(self) -> int:
        with self._lock:
            return len(self._events)

    def note_json(self, token_id: int) -> Json:
        with self._lock:
            note = self._require(token_id)
            return note.to_json(holder=self._index.holder_of(note.token_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require(self, token_id: Any) -> TransferNote:
        # Only exact integers name a token; 0.7 or "1" must not alias a record.
        if isinstance(token_id, bool) or not isinstance(token_id, int):
            raise NotFound("token_not_found", "unknown token_id", {"token_id": repr(token_id)})
        if token_id < 0 or token_id >= len(self._notes):
            raise NotFound("token_not_found", "unknown token_id", {"token_id": token_id})
        return self._notes[token_id]

    def _commit(self, kind: str, token_id: int, ts: int, fields: Json) -> NoteEvent:
        ev = NoteEvent(seq=len(self._events) + 1, kind=kind, token_id=int(token_id), ts=int(ts), fields=fields)

        if self._store is not None:
            self._store.append(ev)
        self._apply(ev)

        log_event(log, ev.kind, seq=ev.seq, token_id=ev.token_id, **ev.fields)
        set_gauge("notes_total", len(self._notes))

        for fn in list(self._listeners):
            try:
                fn(ev)
            except Exception:
                log.exception("registry listener failed for event seq=%s", ev.seq)
        return ev

    def _apply(self, ev: NoteEvent) -> None:
        if ev.seq != len(self._events) + 1:
            raise ValueError(f"event seq gap: have={len(self._events)} got={ev.seq}")

        f = ev.fields
        tid = int(ev.token_id)

        if ev.kind == NOTE_MINTED:
            if tid != len(self._notes):
                raise ValueError(f"mint out of order: next={len(self._notes)} got={tid}")
            bid = str(f["batch_id"])
            if bid in self._by_batch:
                raise ValueError(f"duplicate batch_id in event log: {bid!r}")
            note = TransferNote(
                token_id=tid,
                batch_id=bid,
                origin=str(f["origin"]),
                collector=str(f["collector"]),
                volume_liters=float(f["volume_liters"]),
                collection_timestamp=int(f["collection_timestamp"]),
                collection_location=str(f.get("collection_location", "")),
                origin_details=str(f.get("origin_details", "")),
                metadata_reference=str(f.get("metadata_reference", "")),
                status=NoteStatus.parse(f.get("status", NoteStatus.MINTED.label)),
            )
            self._index.on_transfer(tid, NULL_IDENTITY, str(f["holder"]))
            self._notes.append(note)
            self._by_batch[bid] = tid

        elif ev.kind == NOTE_TRANSFERRED:
            self._notes_at(tid)
            self._index.on_transfer(tid, str(f["from_holder"]), str(f["to_holder"]))

        elif ev.kind == NOTE_STATUS_UPDATED:
            note = self._notes_at(tid)
            self._notes[tid] = replace(note, status=NoteStatus.parse(f["new_status"]))

        elif ev.kind == NOTE_DELIVERED:
            note = self._notes_at(tid)
            self._notes[tid] = replace(
                note,
                processor=str(f["processor"]),
                delivery_timestamp=int(f["delivery_timestamp"]),
                delivery_location=str(f.get("delivery_location", "")),
                processor_details=str(f.get("processor_details", "")),
                status=NoteStatus.parse(f.get("status", NoteStatus.DELIVERED.label)),
            )

        elif ev.kind == NOTE_VERIFIED:
            note = self._notes_at(tid)
            self._notes[tid] = replace(
                note,
                verified=bool(f["verified"]),
                status=NoteStatus.parse(f["status"]),
            )

        else:
            raise ValueError(f"unknown event kind: {ev.kind!r}")

        self._events.append(ev)

    def _notes_at(self, tid: int) -> TransferNote:
        if tid < 0 or tid >= len(self._notes):
            raise ValueError(f"event references unknown token_id: {tid}")
        return self._notes[tid]
