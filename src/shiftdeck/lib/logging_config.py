"""Logging configuration for ShiftDeck.

Provides a single place to configure the ``shiftdeck`` logger hierarchy for
CLI commands and a ``get_logger`` helper used throughout the package.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
ROOT_LOGGER_NAME = "shiftdeck"

# Third-party loggers that are noisy at INFO level
_NOISY_LOGGERS = ("kubernetes", "urllib3")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging for the ShiftDeck package.

    Repeated calls replace the previously installed handler rather than
    stacking a new one.

    Args:
        verbose: Enable DEBUG level output (including third-party loggers)
        quiet: Only emit warnings and errors
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        if getattr(handler, "_shiftdeck_handler", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._shiftdeck_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False

    third_party_level = logging.DEBUG if verbose else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for a ShiftDeck module.

    Args:
        name: Module name, usually ``__name__``

    Returns:
        Logger instance in the ``shiftdeck`` hierarchy
    """
    return logging.getLogger(name)
