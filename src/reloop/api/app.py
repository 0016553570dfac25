from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reloop.api.config import load_api_config
from reloop.api.errors import ApiError
from reloop.api.routes_public import public_router
from reloop.api.security import RequestSizeLimitMiddleware
from reloop.api.structured_logging import RequestLogMiddleware
from reloop.ledger.registry import TransferNoteRegistry
from reloop.runtime.errors import RegistryError
from reloop.runtime.registry_boot import build_registry as _build_registry


def build_registry() -> TransferNoteRegistry:
    """Build the registry for the API runtime.

    This wrapper exists so tests can monkeypatch `reloop.api.app.build_registry`
    without reaching into runtime modules.
    """
    return _build_registry()


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


async def _registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    err = ApiError.from_registry(exc)
    return JSONResponse(status_code=err.status_code, content=err.to_json())


def create_app(*, boot_registry: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_registry:
      - True (default): attach a registry built from the environment
      - False: leave app.state.registry unset so tests can attach their own
    """
    cfg = load_api_config()

    # Disable docs in production.
    if cfg.mode == "prod":
        app = FastAPI(title="Reloop Transfer-Note API", docs_url=None, redoc_url=None, openapi_url=None)
    else:
        app = FastAPI(title="Reloop Transfer-Note API")

    app.state.cfg = cfg
    app.state.registry = build_registry() if boot_registry else None

    app.add_exception_handler(ApiError, _api_error_handler)
    app.add_exception_handler(RegistryError, _registry_error_handler)

    # --- Middleware ---
    app.add_middleware(RequestSizeLimitMiddleware)

    if cfg.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.cors_origins,
            allow_credentials=cfg.cors_origins != ["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "X-Request-Id"],
        )

    # Added last so it wraps everything and logs rejected requests too.
    app.add_middleware(RequestLogMiddleware, enabled=cfg.log_requests)

    # --- Routers ---
    app.include_router(public_router)

    return app


# Module-level app for `uvicorn reloop.api.app:app`.
app = create_app(boot_registry=True)
