# src/hookrelay/core/logs.py
"""Logging setup for the relay process."""

from __future__ import annotations

import logging

from hookrelay.core.settings import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)s | %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    level_name = (level or settings.log_level).upper()
    resolved = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=resolved, format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    root.setLevel(resolved)

    # discord.py is chatty at INFO about gateway resumes
    logging.getLogger("discord").setLevel(max(resolved, logging.WARNING))
