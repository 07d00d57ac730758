from __future__ import annotations

import logging

from .config import get_settings


def configure_logging() -> None:
    """Configure logging defaults for the application."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
