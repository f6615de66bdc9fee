"""
Server entry point.

Usage:
    python -m server.main
    LOG_LEVEL=DEBUG APR_DEBUG_ENABLED=true python -m server.main
"""

from __future__ import annotations

import logging
import os

import uvicorn

from aprcalc.config import load_settings

from .app import create_app


def main():
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    settings = load_settings()
    app = create_app(settings)
    logging.getLogger(__name__).info(
        "Starting Katana APR service on %s:%d", settings.host, settings.port
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
