"""Logging configuration for the server."""

from __future__ import annotations

import logging
import os
import sys

LOG_ENV_VAR = "PKDNS_LOG"
PACKAGE_LOGGER = "pkdomain"
DHT_LOGGER = "mainline"
_OFF = logging.CRITICAL + 1
_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": _OFF,
}
_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_installed_handler: logging.Handler | None = None
logger = logging.getLogger(PACKAGE_LOGGER)


def _install_handler() -> None:
    global _installed_handler
    root = logging.getLogger()
    if _installed_handler is not None:
        root.removeHandler(_installed_handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT))
    root.addHandler(handler)
    _installed_handler = handler


def _apply_directives(value: str) -> None:
    """Apply `level` and `target=level` directives separated by commas."""
    root_level = _OFF
    for directive in (part.strip() for part in value.split(",")):
        if not directive:
            continue
        target, sep, level_text = directive.rpartition("=")
        level = _LEVELS.get(level_text.strip().lower())
        if level is None:
            continue
        if sep and target.strip():
            logging.getLogger(target.strip()).setLevel(level)
        else:
            root_level = level
    logging.getLogger().setLevel(root_level)


def enable_logging(verbose: bool) -> None:
    """Set up logging; the PKDNS_LOG environment variable overrides the verbose flag."""
    _install_handler()
    value = os.environ.get(LOG_ENV_VAR, "")
    if value:
        _apply_directives(value)
        logger.info("Use %s=%s env variable to set logging output.", LOG_ENV_VAR, value)
        if verbose:
            logger.warning(
                "%s= environment variable is already set. Ignore --verbose flag.", LOG_ENV_VAR
            )
        return

    logging.getLogger().setLevel(_OFF)
    logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger(DHT_LOGGER).setLevel(logging.WARNING)
    if verbose:
        logger.info("Verbose mode enabled.")