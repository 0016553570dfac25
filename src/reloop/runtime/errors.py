from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(eq=False)
class RegistryError(Exception):
    """Canonical error type for registry operations.

    Every failure is synchronous and leaves the registry unchanged.
    """

    code: str
    reason: str
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:  # pragma: no cover
        if not self.details:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


class NotFound(RegistryError):
    """Unknown token id or batch id."""


class AlreadyExists(RegistryError):
    """Duplicate batch id."""


class InvalidArgument(RegistryError):
    """Empty, zero or null-identity input."""


class Unauthorized(RegistryError):
    """Caller lacks the required relationship to the record."""
