from __future__ import annotations

import logging
import os

from .app import app

logging.basicConfig(
    level=os.environ.get("COUNCIL_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

__all__ = ["app"]
