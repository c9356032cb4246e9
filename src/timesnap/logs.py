from __future__ import annotations

import logging
import sys

LOGGER_NAME = "timesnap"
_FORMAT = "%(message)s"
_HANDLER_FLAG = "_timesnap_handler"


def configure_logging(*, quiet: bool = False, log_to_stderr: bool = False, verbose: bool = False) -> logging.Logger:
    """Route the package logger to stdout, stderr, or nowhere.

    Calling it again replaces the handler installed by a previous call.
    """

    logger = logging.getLogger(LOGGER_NAME)
    for existing in list(logger.handlers):
        if getattr(existing, _HANDLER_FLAG, False):
            logger.removeHandler(existing)

    if quiet:
        handler: logging.Handler = logging.NullHandler()
    else:
        handler = logging.StreamHandler(sys.stderr if log_to_stderr else sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
    setattr(handler, _HANDLER_FLAG, True)
    logger.addHandler(handler)
    logger.propagate = False
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger
