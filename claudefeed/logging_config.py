"""claudefeed logging configuration.

Logging is standard-library based. Level comes from `CLAUDEFEED_LOG_LEVEL`
(default WARNING). When `CLAUDEFEED_LOG_FILE` is set, records go to that file;
otherwise they go to stderr. Anything written to the terminal while a child
session is attached lands in the middle of the child's screen, so interactive
use should point `CLAUDEFEED_LOG_FILE` somewhere.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure claudefeed logging.

    Args:
        level: Optional override for `CLAUDEFEED_LOG_LEVEL`.
    """
    if level:
        os.environ["CLAUDEFEED_LOG_LEVEL"] = level

    level_name = os.environ.get("CLAUDEFEED_LOG_LEVEL", "WARNING").upper()
    log_file = os.environ.get("CLAUDEFEED_LOG_FILE")

    handler: logging.Handler
    if log_file:
        handler = logging.FileHandler(os.path.expanduser(log_file), encoding="utf-8")
    else:
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))

    root = logging.getLogger("claudefeed")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.WARNING))
    root.propagate = False
