"""Run the signaling hub with uvicorn: ``python -m codepair``."""
from __future__ import annotations

import logging

import uvicorn

from .core.config import settings
from .core.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    setup_logging(settings.log_level)
    logger.info("Starting codepair signaling hub on %s:%s", settings.host, settings.port)
    uvicorn.run("codepair.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
