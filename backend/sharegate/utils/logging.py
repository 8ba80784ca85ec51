"""Logging helpers shared by every sharegate module."""

import logging
import sys

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install a single stdout handler on the ``sharegate`` logger tree."""
    global _configured
    if _configured:
        return

    from sharegate.core.config import settings

    log_level = getattr(logging, (level or settings.log_level).upper(), logging.INFO)

    root = logging.getLogger("sharegate")
    root.setLevel(log_level)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    root.propagate = False

    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
