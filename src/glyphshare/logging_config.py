import logging
import os
import sys
from typing import Optional

LOG_LEVEL_ENV = "GLYPHSHARE_LOG_LEVEL"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s: %(message)s"


def configure_logging(default_level: int = logging.INFO, level: Optional[int] = None) -> None:
    """Configure the root logger with a single stderr handler.

    An explicit ``level`` wins; otherwise GLYPHSHARE_LOG_LEVEL is honoured,
    falling back to ``default_level``.
    """
    if level is None:
        level = default_level
        level_name = os.getenv(LOG_LEVEL_ENV)
        if level_name:
            level = getattr(logging, level_name.upper(), default_level)

    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    # Repeated CLI invocations in one process must not stack handlers
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
