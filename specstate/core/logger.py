"""Logging setup for specstate.

Modules log through ``logging.getLogger(__name__)``; handlers live only on
the package logger, so one call here covers the API, the store clients and
the sync layer. Records carry ISO 8601 timestamps.
"""

import logging
import logging.handlers
import os

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Libraries that log every request or statement at INFO
CHATTY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")

_INSTALLED = "_specstate_handler"


def _parse_level(level: str) -> int:
    name = str(level).upper()
    if name not in LEVELS:
        raise ValueError(f"Invalid log level: {level}. Must be one of: {', '.join(LEVELS)}")
    return getattr(logging, name)


def _handlers(name, log_dir, file_logging, console_logging, max_bytes, backup_count):
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        yield logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
    if console_logging:
        yield logging.StreamHandler()


def setup_logger(
    name: str = "specstate",
    log_dir: str = "./logs",
    level: str = "INFO",
    file_logging: bool = True,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach file and console handlers to a logger.

    Handlers installed by an earlier call are replaced, so calling this
    again (for example with a new level from reloaded settings) never
    stacks duplicates. Handlers added by anything else are left alone.

    Raises:
        ValueError: If the level name is unknown
    """
    numeric_level = _parse_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    for handler in [h for h in logger.handlers if getattr(h, _INSTALLED, False)]:
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in _handlers(name, log_dir, file_logging, console_logging, max_bytes, backup_count):
        setattr(handler, _INSTALLED, True)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def setup_from_settings(settings) -> logging.Logger:
    """Configure the package logger from a Settings instance."""
    logger = setup_logger(
        "specstate",
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.file_logging,
    )
    if logger.level > logging.DEBUG:
        for name in CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
    return logger
