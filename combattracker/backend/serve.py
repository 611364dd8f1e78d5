"""Run the combat tracker API with uvicorn."""

from __future__ import annotations

import logging

import uvicorn

from combattracker.backend.api import create_app
from combattracker.backend.config import load_settings
from combattracker.backend.logging_config import setup_logging
from combattracker.backend.store import create_store

logger = logging.getLogger(__name__)


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    store = create_store(database_url=settings.database_url)
    logger.info("Using %s", type(store).__name__)
    app = create_app(store=store)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
