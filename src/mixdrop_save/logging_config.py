import logging
import os
import sys
from typing import Optional, TextIO

ENV_LOG_LEVEL = "MIXDROP_LOG_LEVEL"
PACKAGE_LOGGER = "mixdrop_save"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [mixdrop] %(name)s: %(message)s"


def configure_logging(default_level: int = logging.INFO, stream: Optional[TextIO] = None) -> logging.Logger:
    """Attach a stream handler to the ``mixdrop_save`` logger and set its level.

    Respects MIXDROP_LOG_LEVEL env var if present. Calling it again only
    updates the level; the handler is installed once.
    """
    level_name = os.getenv(ENV_LOG_LEVEL)
    level = default_level
    if level_name:
        level = getattr(logging, level_name.upper(), default_level)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    if not any(getattr(h, "_mixdrop_handler", False) for h in package_logger.handlers):
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._mixdrop_handler = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)
    return package_logger
