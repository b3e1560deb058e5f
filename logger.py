"""
logger.py
---------
Application-wide logging configuration for the database migrator.

Design Decisions:
    * One application logger ("dbmigrator") is configured on first import;
      every module asks for a child via ``get_logger(__name__)``.
    * Worker threads copy tables concurrently, so the thread name is part
      of every line to keep interleaved table logs readable.
    * A file handler is added only when LOG_FILE is set and always records
      DEBUG, which is where generated SQL text is logged.
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path

from config import CONFIG, get_log_level

_ROOT_LOGGER_NAME = "dbmigrator"
_CONSOLE_FORMAT = "%(asctime)s [%(levelname)-8s] %(threadName)s %(name)s: %(message)s"
_FILE_FORMAT = (
    "%(asctime)s [%(levelname)s] %(threadName)s %(name)s "
    "(%(filename)s:%(lineno)d): %(message)s"
)
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

_configured = False


def _configure_root_logger() -> None:
    global _configured
    if _configured:
        return
    _configured = True

    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    root.propagate = False

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(get_log_level())
    console_handler.setFormatter(
        logging.Formatter(fmt=_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )
    root.addHandler(console_handler)

    if CONFIG.migration.log_file:
        log_path = Path(CONFIG.migration.log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter(fmt=_FILE_FORMAT, datefmt=_DATE_FORMAT)
            )
            root.addHandler(file_handler)
        except OSError as exc:
            root.warning("Could not create log file '%s': %s", log_path, exc)


_configure_root_logger()


def set_console_level(level: int) -> None:
    """Change the console verbosity after start-up (used by ``main.py -v``)."""
    root = logging.getLogger(_ROOT_LOGGER_NAME)
    for handler in root.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


def get_logger(name: str) -> logging.Logger:
    """
    Return a child logger scoped to the given name.

    Args:
        name: Typically ``__name__`` of the calling module.

    Returns:
        A :class:`logging.Logger` under the "dbmigrator" hierarchy.

    Example::

        log = get_logger(__name__)
        log.info("Copied %d rows into %s", rows, table)
        log.warning("Drop failed for %s: %s", table, exc)
    """
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")
