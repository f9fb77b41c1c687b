"""Logging setup shared by the API process and the Celery worker."""

import logging
import sys

from docqa.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once.

    Args:
        level: Optional level name, defaults to settings.LOG_LEVEL
    """
    root = logging.getLogger()
    if getattr(root, "_docqa_configured", False):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    root._docqa_configured = True
