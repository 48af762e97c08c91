"""Logging setup for TerraDeck.

All modules obtain loggers through ``get_logger`` so that the package-level
``terradeck`` logger controls verbosity for the CLI and the HTTP server.
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "terradeck"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO level
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def get_logger(name: str) -> logging.Logger:
    """Return a logger namespaced under the TerraDeck root logger.

    Args:
        name: Module name, usually ``__name__``.

    Returns:
        Logger instance.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the TerraDeck root logger.

    Args:
        verbose: Enable DEBUG level output.
        quiet: Only emit warnings and errors. Ignored when ``verbose`` is set.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    # Re-running setup (e.g. in tests) must not stack handlers
    for handler in list(root.handlers):
        if getattr(handler, "_terradeck_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler._terradeck_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.propagate = False

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING if not verbose else level)
