from __future__ import annotations

import logging


def configure_app_logging(level: str = "INFO") -> None:
    """
    Set the level for the ``workspace_access`` logger tree.

    Notes:
    - Stdlib logging only; uvicorn already installs handlers.
    - ``WSA_LOG_LEVEL=DEBUG`` shows per-request mask resolution.
    - Tokens and passwords are never passed to a logger anywhere in the package.
    """

    normalized = level.upper()
    logging.getLogger("workspace_access").setLevel(normalized)
    logging.getLogger("workspace_access").propagate = True
