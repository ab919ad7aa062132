"""FlowShare application configuration.

Loads settings from a single YAML file (``flowshare.settings.yaml`` by
default, or the path in ``FLOWSHARE_SETTINGS``). Every section has defaults,
so a missing file yields a working configuration.

Sections:
  * server   — bind address and CORS origins
  * storage  — room storage root and upload limits
  * sync     — polling cadence advertised to clients
  * logging  — root logger level
"""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("flowshare.settings.yaml")
SETTINGS_ENV_VAR = "FLOWSHARE_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class StorageSettings(BaseModel):
    """Where room namespaces live and how large an upload may be."""
    root_dir:           str = "./uploads"
    max_upload_bytes:   int = Field(default=100 * 1024 * 1024, gt=0)
    max_room_id_length: int = Field(default=64, gt=0)
    chunk_size:         int = Field(default=1024 * 1024, gt=0)


class SyncSettings(BaseModel):
    poll_interval_seconds: float = Field(default=3.0, gt=0)


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        if not isinstance(logging.getLevelName(v.upper()), int):
            raise ValueError(f"unknown log level: {v}")
        return v


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    sync:    SyncSettings    = Field(default_factory=SyncSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_root_dir(root_dir: str, settings_path: Path) -> str:
    """Resolve a relative storage root against the settings file's directory."""
    root = Path(root_dir).expanduser()
    if root.is_absolute():
        return str(root)
    return str((settings_path.resolve().parent / root).resolve())


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings from YAML and apply environment overrides.

    Args:
        settings_path: Explicit settings file. Defaults to the value of
            ``FLOWSHARE_SETTINGS`` or ``./flowshare.settings.yaml``.

    Returns:
        A validated AppConfig.
    """
    if settings_path is None:
        settings_path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_path = Path(settings_path)

    data = _load_yaml(settings_path)
    config = AppConfig(**data)

    config.storage.root_dir = _resolve_root_dir(config.storage.root_dir, settings_path)

    port = os.environ.get("PORT")
    if port:
        config.server.port = int(port)

    logger.info(
        "Settings loaded (server=%s:%s, storage.root_dir=%s, max_upload_bytes=%d)",
        config.server.host,
        config.server.port,
        config.storage.root_dir,
        config.storage.max_upload_bytes,
    )
    return config


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    return load_config()
