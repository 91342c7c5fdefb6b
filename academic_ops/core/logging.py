import logging
from typing import Optional

from academic_ops.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
ROOT_LOGGER_NAME = "academic_ops"


def setup_logging() -> logging.Logger:
    """Configure the package logger once; safe to call repeatedly."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    # Avoid duplicate handlers when the app factory runs more than once (tests, reload).
    if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
        handler: logging.Handler
        if settings.log_file:
            handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        else:
            handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.setLevel(level)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    base = logging.getLogger(ROOT_LOGGER_NAME)
    if not name:
        return base
    if name.startswith(ROOT_LOGGER_NAME + "."):
        name = name[len(ROOT_LOGGER_NAME) + 1:]
    return base.getChild(name)
