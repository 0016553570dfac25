from __future__ import annotations

from typing import Dict, List, Optional

from reloop.ledger.types import NULL_IDENTITY


class HolderIndex:
    """Holder -> token ids, kept in sync on every ownership transfer.

    Order inside a holder's list is not a contract: removal swaps the last
    entry into the vacated slot.
    """

    def __init__(self) -> None:
        self._by_holder: Dict[str, List[int]] = {}
        self._slot: Dict[int, int] = {}
        self._holder: Dict[int, str] = {}

    def __len__(self) -> int:
        return len(self._holder)

    def holder_of(self, token_id: int) -> Optional[str]:
        return self._holder.get(int(token_id))

    def tokens_of(self, holder: str) -> List[int]:
        return list(self._by_holder.get(holder, []))

    def holders(self) -> List[str]:
        return sorted(self._by_holder.keys())

    def on_transfer(self, token_id: int, from_holder: str, to_holder: str) -> None:
        tid = int(token_id)
        if from_holder != NULL_IDENTITY:
            self._remove(tid, from_holder)
        if to_holder != NULL_IDENTITY:
            self._append(tid, to_holder)

    def _remove(self, tid: int, holder: str) -> None:
        if self._holder.get(tid) != holder:
            raise KeyError(f"token {tid} is not held by {holder!r}")

        toks = self._by_holder[holder]
        i = self._slot.pop(tid)
        last = toks.pop()
        if last != tid:
            toks[i] = last
            self._slot[last] = i
        if not toks:
            del self._by_holder[holder]
        del self._holder[tid]

    def _append(self, tid: int, holder: str) -> None:
        if tid in self._holder:
            raise KeyError(f"token {tid} is already held by {self._holder[tid]!r}")

        toks = self._by_holder.setdefault(holder, [])
        self._slot[tid] = len(toks)
        toks.append(tid)
        self._holder[tid] = holder

    def check(self) -> None:
        """Raise ValueError unless every token sits in exactly one holder set."""
        seen: Dict[int, str] = {}
        for holder, toks in self._by_holder.items():
            if not toks:
                raise ValueError(f"empty token list kept for {holder!r}")
            for i, tid in enumerate(toks):
                if tid in seen:
                    raise ValueError(f"token {tid} held by {seen[tid]!r} and {holder!r}")
                seen[tid] = holder
                if self._slot.get(tid) != i:
                    raise ValueError(f"slot mismatch for token {tid}")
        if seen != self._holder:
            raise ValueError("reverse index out of sync")
