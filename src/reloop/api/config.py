import os
from dataclasses import dataclass
from typing import List


def _is_truthy(v: str | None) -> bool:
    if v is None:
        return False
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class ApiConfig:
    mode: str  # "dev" | "prod"
    host: str
    port: int
    cors_origins: List[str]
    log_requests: bool


def parse_cors_origins(raw: str | None, mode: str) -> List[str]:
    """Parse CORS origins with production-safe defaults.

    Policy:
      - unset/empty -> CORS disabled
      - wildcard "*" is rejected in prod
      - in non-prod modes, "*" is allowed for convenience
    """
    s = (raw or "").strip()
    if not s:
        return []

    origins = [o.strip() for o in s.split(",") if o.strip()]

    if "*" in origins:
        if mode == "prod":
            raise RuntimeError(
                "Unsafe CORS configuration: wildcard '*' not allowed in production. "
                "Set explicit origins in RELOOP_CORS_ORIGINS."
            )
        return ["*"]

    return origins


def load_api_config() -> ApiConfig:
    mode = (os.getenv("RELOOP_MODE") or "prod").strip().lower()
    host = os.getenv("RELOOP_API_HOST", "127.0.0.1")
    try:
        port = int(os.getenv("RELOOP_API_PORT", "8080"))
    except ValueError:
        raise RuntimeError("RELOOP_API_PORT must be an integer") from None

    raw_log = os.getenv("RELOOP_LOG_REQUESTS")
    log_requests = True if raw_log is None else _is_truthy(raw_log)

    return ApiConfig(
        mode=mode,
        host=host,
        port=port,
        cors_origins=parse_cors_origins(os.getenv("RELOOP_CORS_ORIGINS"), mode),
        log_requests=log_requests,
    )
