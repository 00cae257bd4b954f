"""blockmove logging configuration.

All modules log through ``logging.getLogger(__name__)`` under the
``blockmove`` logger tree. The level comes from the ``--log-level`` flag or
``BLOCKMOVE_LOG_LEVEL`` (default ``INFO``).
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional

DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure blockmove logging.

    Args:
        level: Optional override for `BLOCKMOVE_LOG_LEVEL`.
    """
    if level:
        os.environ["BLOCKMOVE_LOG_LEVEL"] = level
    level_name = os.getenv("BLOCKMOVE_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()

    root = logging.getLogger("blockmove")
    root.setLevel(level_name)
    if not root.handlers:
        # stderr keeps the local preview's stdout free for frames
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
    root.propagate = False

    # asyncssh logs every auth round-trip at INFO
    logging.getLogger("asyncssh").setLevel(logging.WARNING)
