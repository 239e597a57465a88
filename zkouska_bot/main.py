"""Entrypoint for running the bot and its API via `python -m zkouska_bot.main`."""

from __future__ import annotations

import logging
import os

import uvicorn

from .api import create_app
from .config import load_settings


def run() -> None:
    env_file = os.getenv("ZKOUSKA_ENV")
    settings = load_settings(env_file)
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )
    app = create_app(settings)
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        log_level=settings.log_level,
    )


def run_mcp() -> None:
    """Serve the MCP tools over stdio."""

    logging.basicConfig(level=os.getenv("LOG_LEVEL", "info").upper())
    from .mcp_server import mcp

    mcp.run()


if __name__ == "__main__":  # pragma: no cover
    run()
