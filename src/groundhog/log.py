"""Logging setup for embedding callers.

Library modules only create loggers; handlers are installed here on request.
"""

import logging
from typing import Optional, Union

LOGGER_NAME = "groundhog"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(
    level: Union[str, int] = "WARNING",
    handler: Optional[logging.Handler] = None,
) -> logging.Logger:
    """Attach one handler to the groundhog logger and set its level."""
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)

    for existing in list(logger.handlers):
        if getattr(existing, "_groundhog", False):
            logger.removeHandler(existing)

    handler = handler or logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler._groundhog = True
    logger.addHandler(handler)
    return logger
