# src/reloop/api/__main__.py
from __future__ import annotations

import uvicorn

from reloop.env import load_dotenv_if_present


def main() -> None:
    # Load .env early so RELOOP_* vars exist before anything reads them.
    load_dotenv_if_present()

    # Import after dotenv load: importing reloop.api.app builds the module-level
    # app and its registry, which is the only one this process serves.
    from reloop.api.app import app
    from reloop.api.config import load_api_config
    from reloop.api.structured_logging import configure_structured_logging

    configure_structured_logging()
    cfg = load_api_config()

    uvicorn.run(app, host=cfg.host, port=cfg.port, log_level="info")


if __name__ == "__main__":
    main()
