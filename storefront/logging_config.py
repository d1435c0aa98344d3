"""
Package-wide logging setup.

Every module logs through a child of the "storefront" logger, so one handler
on the parent covers the whole service. Level comes from LOG_LEVEL.
"""
import logging
import sys

from storefront.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_root = logging.getLogger("storefront")


def configure_logging(level: str = LOG_LEVEL) -> logging.Logger:
    """Attach a stdout handler to the package logger (once) and set its level."""
    _root.setLevel(level)
    if not _root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        _root.addHandler(handler)
    # uvicorn installs its own root handlers; avoid printing every line twice
    _root.propagate = False
    return _root


def get_logger(name: str = None) -> logging.Logger:
    """Return 'storefront.<name>', or the package logger itself when name is empty."""
    if name:
        return logging.getLogger(f"storefront.{name}")
    return _root
