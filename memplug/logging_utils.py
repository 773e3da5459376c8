from __future__ import annotations

import logging
import os

from .config import LOG_LEVEL_ENV_VAR


def configure_logging(verbosity: int = 0, level: str | None = None) -> None:
    if level is None and verbosity:
        level = "INFO" if verbosity == 1 else "DEBUG"
    chosen = (level or os.environ.get(LOG_LEVEL_ENV_VAR) or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, chosen, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
