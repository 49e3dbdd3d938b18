"""
Process entrypoint for the HTTP API.

PORT (set by most hosting platforms) overrides AV_API_PORT.
"""
from __future__ import annotations

import os

import uvicorn

from shared.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "api.app:app",
        host=settings.api_host,
        port=int(os.environ.get("PORT") or settings.api_port),
        workers=settings.api_workers,
        log_level=settings.log_level.lower(),
        # RequestContextMiddleware writes the access log
        access_log=False,
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
