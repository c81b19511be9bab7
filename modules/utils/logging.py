"""Logging helpers."""

from __future__ import annotations

import logging
from pathlib import Path

from config.settings import AppConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
# Third-party loggers that report every HTTP connection.
_NOISY_LOGGERS = ("urllib3", "httpx", "httpcore")


def _resolve_level(name: str) -> int:
    level = logging.getLevelName((name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(config: AppConfig) -> logging.Logger:
    """Send records to ``<log_dir>/magicapi_toolkit.log`` and the console."""
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    level = _resolve_level(config.log_level)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_dir / "magicapi_toolkit.log", encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return logging.getLogger("magicapi_toolkit")
