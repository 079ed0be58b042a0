from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Root logging setup; later calls are no-ops once handlers exist."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
