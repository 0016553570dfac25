from __future__ import annotations

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

from reloop.runtime.errors import InvalidArgument
from reloop.util.gps import parse_gps

Json = Dict[str, Any]

NULL_IDENTITY = ""


class NoteStatus(IntEnum):
    """Custody status of a transfer note.

    Integer values match the on-chain enum the client code decoded.
    """

    MINTED = 0
    IN_TRANSIT = 1
    DELIVERED = 2
    VERIFIED = 3
    COMPLETED = 4

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, v: Any) -> "NoteStatus":
        """Accept a NoteStatus, an int code, or a name in any common spelling.

        "Minted", "MINTED", "in_transit", "InTransit", "in-transit" all work.
        """
        if isinstance(v, NoteStatus):
            return v
        if isinstance(v, bool):
            raise InvalidArgument("invalid_status", "status must be a name or integer code", {"status": v})
        if isinstance(v, int):
            try:
                return cls(v)
            except ValueError:
                raise InvalidArgument("invalid_status", "unknown status code", {"status": v}) from None
        s = str(v or "").strip()
        if s.isdigit():
            return cls.parse(int(s))
        key = s.replace("-", "").replace("_", "").replace(" ", "").upper()
        found = _BY_KEY.get(key)
        if found is None:
            raise InvalidArgument("invalid_status", "unknown status name", {"status": s})
        return found


_LABELS = {
    NoteStatus.MINTED: "Minted",
    NoteStatus.IN_TRANSIT: "InTransit",
    NoteStatus.DELIVERED: "Delivered",
    NoteStatus.VERIFIED: "Verified",
    NoteStatus.COMPLETED: "Completed",
}

_BY_KEY = {st.name.replace("_", ""): st for st in NoteStatus}


def normalize_identity(v: Any) -> str:
    """Strip an identity and fold the zero address onto the null identity."""
    if v is None:
        return NULL_IDENTITY
    s = str(v).strip()
    if s[:2].lower() == "0x" and len(s) > 2 and set(s[2:]) == {"0"}:
        return NULL_IDENTITY
    return s


def is_null_identity(v: Any) -> bool:
    return normalize_identity(v) == NULL_IDENTITY


def as_volume(v: Any) -> float:
    if isinstance(v, bool) or v is None:
        raise InvalidArgument("invalid_volume", "volume must be a positive number", {"volume": v})
    try:
        f = float(v)
    except (TypeError, ValueError):
        raise InvalidArgument("invalid_volume", "volume must be a positive number", {"volume": v}) from None
    if not math.isfinite(f) or f <= 0:
        raise InvalidArgument("invalid_volume", "volume must be a positive number", {"volume": v})
    return f


@dataclass(frozen=True, slots=True)
class TransferNote:
    """One UCO collection event and its custody chain.

    Records are immutable; the registry swaps in a new instance on every
    mutation so readers never observe a half-applied change.
    """

    token_id: int
    batch_id: str
    origin: str
    collector: str
    volume_liters: float
    collection_timestamp: int
    collection_location: str = ""
    origin_details: str = ""
    metadata_reference: str = ""
    processor: str = NULL_IDENTITY
    delivery_timestamp: int = 0
    delivery_location: str = ""
    processor_details: str = ""
    status: NoteStatus = NoteStatus.MINTED
    verified: bool = False

    @property
    def delivered(self) -> bool:
        return self.processor != NULL_IDENTITY

    def to_json(self, *, holder: Optional[str] = None) -> Json:
        out: Json = {
            "token_id": int(self.token_id),
            "batch_id": self.batch_id,
            "origin": self.origin,
            "collector": self.collector,
            "processor": self.processor or None,
            "volume_liters": float(self.volume_liters),
            "collection_timestamp": int(self.collection_timestamp),
            "delivery_timestamp": int(self.delivery_timestamp) or None,
            "collection_location": self.collection_location,
            "delivery_location": self.delivery_location,
            "collection_gps": parse_gps(self.collection_location),
            "delivery_gps": parse_gps(self.delivery_location),
            "origin_details": self.origin_details,
            "processor_details": self.processor_details,
            "metadata_reference": self.metadata_reference,
            "status": self.status.label,
            "verified": bool(self.verified),
        }
        if holder is not None:
            out["holder"] = holder
        return out
