from __future__ import annotations

"""Registry event model.

Every applied state change is described by exactly one NoteEvent carrying
the token id and all changed fields. Applying the full event log in `seq`
order to an empty registry reproduces its state.
"""

from dataclasses import dataclass, field
from typing import Any, Dict

Json = Dict[str, Any]

NOTE_MINTED = "note_minted"
NOTE_TRANSFERRED = "note_transferred"
NOTE_STATUS_UPDATED = "note_status_updated"
NOTE_DELIVERED = "note_delivered"
NOTE_VERIFIED = "note_verified"

EVENT_KINDS = frozenset(
    {
        NOTE_MINTED,
        NOTE_TRANSFERRED,
        NOTE_STATUS_UPDATED,
        NOTE_DELIVERED,
        NOTE_VERIFIED,
    }
)


@dataclass(frozen=True)
class NoteEvent:
    seq: int
    kind: str
    token_id: int
    ts: int
    fields: Json = field(default_factory=dict)

    @staticmethod
    def from_json(j: Any) -> "NoteEvent":
        if isinstance(j, NoteEvent):
            return j
        if not isinstance(j, dict):
            j = dict(j)  # type: ignore[arg-type]
        kind = str(j.get("kind", ""))
        if kind not in EVENT_KINDS:
            raise ValueError(f"unknown event kind: {kind!r}")
        return NoteEvent(
            seq=int(j.get("seq", 0)),
            kind=kind,
            token_id=int(j.get("token_id", -1)),
            ts=int(j.get("ts", 0)),
            fields=dict(j.get("fields", {}) or {}),
        )

    def to_json(self) -> Json:
        return {
            "seq": self.seq,
            "kind": self.kind,
            "token_id": self.token_id,
            "ts": self.ts,
            "fields": dict(self.fields),
        }
