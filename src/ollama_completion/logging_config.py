"""Debug trace routing.

Completion output goes to stdout and is consumed by bash, so diagnostics must
never reach it. With debug enabled the package logger writes to stderr (or to
a log file); otherwise it is silenced with a NullHandler.
"""

import logging
from pathlib import Path

PACKAGE_LOGGER = "ollama_completion"
DEBUG_FORMAT = "DEBUG: %(name)s: %(message)s"


def configure_logging(debug: bool = False, log_file: Path | None = None) -> logging.Logger:
    """Configure the package logger for this process.

    Args:
        debug: Emit debug trace to the side channel
        log_file: Write the trace to this file instead of stderr

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    if not debug:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.WARNING)
        return logger

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter("%(asctime)s - " + DEBUG_FORMAT))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(DEBUG_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return logger


__all__ = ["PACKAGE_LOGGER", "configure_logging"]
