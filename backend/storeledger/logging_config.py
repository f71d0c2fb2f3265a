# Overview: Process-wide logging setup for the Flask app and service loggers.

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(app) -> None:
    """
    Configure root logging once per process from LOG_LEVEL.

    Services log through logging.getLogger(__name__); routes use
    current_app.logger. Both end up on the same stream handler.
    """
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
    logging.getLogger("storeledger").setLevel(level)
    app.logger.setLevel(level)
