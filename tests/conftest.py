from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "reloop" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


class FixedClock:
    """Deterministic clock: every call returns the current value, tick() advances it."""

    def __init__(self, start: int = 1_700_000_000) -> None:
        self.now = int(start)

    def __call__(self) -> int:
        return self.now

    def tick(self, seconds: int = 60) -> int:
        self.now += int(seconds)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "RELOOP_DB_PATH",
        "RELOOP_STRICT_STATUS",
        "RELOOP_CORS_ORIGINS",
        "RELOOP_METRICS_ENABLED",
        "RELOOP_VERIFY_BASE_URL",
        "RELOOP_MAX_REQUEST_BYTES",
        "RELOOP_SIZE_LIMIT_DISABLE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RELOOP_MODE", "dev")
