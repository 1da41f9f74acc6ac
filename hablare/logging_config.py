"""
Logging configuration for hablare.

Quiet by default: SDK and HTTP client chatter is suppressed unless debug
mode is switched on. Each store also keeps an operations log recording
requests, file writes and deletions at INFO level.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "hablare-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3

# Loggers of the libraries generators talk through
_LIBRARY_LOGGERS = ("openai", "anthropic", "httpx", "httpcore", "urllib3", "requests")

_PACKAGE_LOGGER = "hablare"


def _stderr_formatter() -> logging.Formatter:
    return logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")


def _ops_formatter() -> logging.Formatter:
    return logging.Formatter(
        "%(asctime)s %(levelname)-7s [%(module)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def configure_quiet_mode(quiet: bool = True):
    """
    Silence library loggers and warnings, or restore them.

    Args:
        quiet: If True, only library errors get through. If False, library
            loggers inherit the root level again.
    """
    warnings.filterwarnings("ignore" if quiet else "default")
    level = logging.ERROR if quiet else logging.NOTSET
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def enable_debug_mode():
    """Send debug output from hablare and its provider SDKs to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    has_stderr = any(
        isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
        for h in root.handlers
    )
    if not has_stderr:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(_stderr_formatter())
        root.addHandler(handler)

    for name in (_PACKAGE_LOGGER,) + _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """
    Attach the operations log of a store to the hablare logger.

    Writes to {store_path}/hablare-ops.log, rotating at 1MB with 3 backups.
    Active whether or not debug mode is on. Calling it again for the same
    store returns the handler already attached.
    """
    log_path = (Path(store_path) / OPS_LOG_FILENAME).resolve()
    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    for existing in package_logger.handlers:
        if isinstance(existing, RotatingFileHandler) and Path(existing.baseFilename) == log_path:
            return existing

    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_path, maxBytes=OPS_LOG_MAX_BYTES, backupCount=OPS_LOG_BACKUPS)
    handler.setLevel(logging.INFO)
    handler.setFormatter(_ops_formatter())
    package_logger.addHandler(handler)

    # INFO must reach the file even in quiet mode
    if package_logger.level == logging.NOTSET or package_logger.level > logging.INFO:
        package_logger.setLevel(logging.INFO)
    return handler


def remove_ops_log(handler: logging.Handler) -> None:
    """Detach and close a handler returned by configure_ops_log()."""
    logging.getLogger(_PACKAGE_LOGGER).removeHandler(handler)
    handler.close()
