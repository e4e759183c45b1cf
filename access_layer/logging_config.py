from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Minimal logging configuration for this repo.

    Notes:
    - stdlib logging only; Uvicorn already installs handlers.
    - Sets the level for `access_layer.*`, including the `access_layer.audit` logger.
    - Set `ACCESS_LOG_LEVEL=DEBUG` to see injected policy constraints and compiled SQL.
    """

    normalized = level.upper()
    logging.getLogger("access_layer").setLevel(normalized)
    logging.getLogger("access_layer").propagate = True
