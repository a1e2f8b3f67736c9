"""Logging setup shared by the orchestrator and tool services."""

import logging
from typing import Optional

from .config import config


def configure_logging(level: Optional[str] = None) -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Set level for our modules
    logging.getLogger("askrelay").setLevel(log_level)
