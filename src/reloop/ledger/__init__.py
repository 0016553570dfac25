# src/reloop/ledger/__init__.py
"""
Reloop transfer-note ledger

  - types: TransferNote record, NoteStatus, identity helpers
  - holder_index: holder -> token ids, synced on ownership transfer
  - events: NoteEvent, the unit of replay
  - registry: TransferNoteRegistry, the single-writer store and its rules
"""

from __future__ import annotations

__all__ = [
    "types",
    "holder_index",
    "events",
    "registry",
]
