"""
Entrypoint for the contest API (`contest-tracker-api`).

Serves the contest listing, bookmarks and calendar export through uvicorn.
Unless CT_EMBEDDED_SCHEDULER is off, the same process also runs the fetch,
status and backfill jobs. PORT overrides the configured port when set.
"""
from __future__ import annotations

import os

import uvicorn

from shared.config import get_settings


def main() -> None:
    """Run uvicorn against api.app:app."""
    settings = get_settings()
    port = int(os.environ.get("PORT", settings.api_port))

    uvicorn.run(
        "api.app:app",
        host=settings.api_host,
        port=port,
        workers=settings.api_workers,
        log_level=settings.log_level.lower(),
        access_log=False,  # We handle logging via middleware
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
