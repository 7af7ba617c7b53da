"""
Tracker Datastore - Main entry point.

This module starts the HTTP backup API:
- Relocates the legacy on-disk layout (once)
- Opens the live store, applies schema and migrations
- Serves /api/database/backups and /api/database/restore

Usage:
    python -m tracker.datastore.main

Configuration is entirely via environment variables.
See config.py and api/config.py for all available settings.

Invariants:
    - The startup sequence completes before any request is served
    - The live store is closed on shutdown
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn

from .api import Settings, create_app
from .config import DatastoreConfig
from .service import open_datastore

logger = logging.getLogger(__name__)


def setup_logging(config: DatastoreConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Datastore configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    # Load configuration
    try:
        config = DatastoreConfig.from_env()
        settings = Settings()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    # Setup logging
    setup_logging(config)
    config.log_config()

    datastore = open_datastore(config)
    app = create_app(datastore=datastore, settings=settings)

    logger.info(
        "Starting HTTP API",
        extra={"host": settings.host, "port": settings.port},
    )
    try:
        uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    finally:
        datastore.close()


if __name__ == "__main__":
    main()
