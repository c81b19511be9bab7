"""Configuration helpers for the MagicAPI toolkit."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

DEFAULT_API_URL = "https://api.magicapi.dev"
# Browsers typically cap localStorage at roughly 5 MiB per origin.
DEFAULT_STORAGE_QUOTA = 5 * 1024 * 1024


@dataclass(slots=True)
class AppConfig:
    """Centralized application configuration."""

    api_url: str = DEFAULT_API_URL
    api_key: Optional[str] = None
    storage_path: Path = Path("data/local_storage.json")
    download_dir: Path = Path("downloads")
    log_dir: Path = Path("logs")
    log_level: str = "INFO"
    storage_quota_bytes: int = DEFAULT_STORAGE_QUOTA
    request_timeout: Optional[float] = None
    metadata: dict[str, Any] = field(default_factory=dict)


def _load_env_file(path: Path) -> None:
    """Populate environment variables from a simple KEY=VALUE .env file."""
    if not path.exists():
        return

    for line in path.read_text(encoding="utf-8").splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ[key.strip()] = value.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """Return an AppConfig instance with environment-aware settings."""
    env_path = Path(config_path) if config_path else Path(".env")
    _load_env_file(env_path)

    api_url = (os.getenv("MAGICAPI_API_URL") or DEFAULT_API_URL).rstrip("/")
    api_key = os.getenv("MAGICAPI_KEY") or os.getenv("MAGICAPI_API_KEY") or None

    storage_path = Path(os.getenv("MAGICAPI_STORAGE_PATH") or "data/local_storage.json").expanduser()
    download_dir = Path(os.getenv("MAGICAPI_DOWNLOAD_DIR") or "downloads").expanduser()
    log_dir = Path(os.getenv("LOG_DIR") or "logs").expanduser()

    metadata: dict[str, Any] = {
        "screenshot_defaults": {
            "res_x": _env_int("MAGICAPI_SCREENSHOT_RES_X", 1280),
            "res_y": _env_int("MAGICAPI_SCREENSHOT_RES_Y", 900),
            "out_format": os.getenv("MAGICAPI_SCREENSHOT_FORMAT") or "jpg",
            "wait_time": _env_int("MAGICAPI_SCREENSHOT_WAIT_MS", 1000),
        },
    }

    return AppConfig(
        api_url=api_url,
        api_key=api_key,
        storage_path=storage_path,
        download_dir=download_dir,
        log_dir=log_dir,
        log_level=os.getenv("LOG_LEVEL") or "INFO",
        storage_quota_bytes=_env_int("MAGICAPI_STORAGE_QUOTA", DEFAULT_STORAGE_QUOTA),
        request_timeout=_env_float("MAGICAPI_TIMEOUT"),
        metadata=metadata,
    )
