from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .constants import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_MAX_ATTEMPTS,
    DEFAULT_REMOTE_TIMEOUT,
)


class RemoteConfig(BaseModel):
    """Settings for talking to the remote workflow engine."""

    timeout_seconds: float = DEFAULT_REMOTE_TIMEOUT
    api_base_url: Optional[str] = None
    api_key: Optional[str] = None
    callback_url: Optional[str] = None
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL
    poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS


class TracewireConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    registry_path: Optional[str] = None
    manifest_dir: Optional[str] = None
    log_level: str = "INFO"
    remote: RemoteConfig = RemoteConfig()


def load_config(path: Optional[str] = None) -> TracewireConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to TRACEWIRE_CONFIG env
            variable or 'tracewire.yaml' in the current directory.
    """

    config_path = path or os.getenv("TRACEWIRE_CONFIG", "tracewire.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = TracewireConfig(**data)
    else:
        config = TracewireConfig()

    env_db_url = os.getenv("TRACEWIRE_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    if os.getenv("N8N_API_BASE_URL"):
        config.remote.api_base_url = os.environ["N8N_API_BASE_URL"]
    if os.getenv("N8N_API_KEY"):
        config.remote.api_key = os.environ["N8N_API_KEY"]
    if os.getenv("TRACEWIRE_CALLBACK_URL"):
        config.remote.callback_url = os.environ["TRACEWIRE_CALLBACK_URL"]
    return config
