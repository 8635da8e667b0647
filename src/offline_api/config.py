"""Pipeline settings loaded from YAML with environment overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from offline_api import constants
from offline_api.errors import ConfigError


def get_default_data_dir() -> Path:
    """Get path to the per-user data directory."""
    return Path.home() / ".offline-api"


def get_config_path() -> Path:
    """Get path to the user config file."""
    return get_default_data_dir() / "config.yaml"


class PipelineSettings(BaseModel):
    """
    Settings for the request pipeline.

    Stored in: ~/.offline-api/config.yaml

    Fields:
    - base_url: Backend API base URL
    - process_request_delay_ms: Main queue tick interval
    - min_retry_wait_ms / max_random_retry_wait_ms: Bounds for the first retry wait
    - max_retry_wait_ms: Ceiling for the retry wait
    - request_timeout_s: Per-request HTTP timeout
    - authenticate_command: Command name used to exchange credentials for a token
    - data_dir: Where the durable queue and key/value records live
    """

    base_url: str = constants.DEFAULT_BASE_URL
    process_request_delay_ms: int = Field(default=constants.PROCESS_REQUEST_DELAY_MS, ge=0)
    min_retry_wait_ms: int = Field(default=constants.MIN_RETRY_WAIT_TIME_MS, ge=0)
    max_random_retry_wait_ms: int = Field(default=constants.MAX_RANDOM_RETRY_WAIT_TIME_MS, ge=0)
    max_retry_wait_ms: int = Field(default=constants.MAX_RETRY_WAIT_TIME_MS, ge=0)
    request_timeout_s: float = Field(default=constants.DEFAULT_REQUEST_TIMEOUT_S, gt=0)
    authenticate_command: str = constants.AUTHENTICATE_COMMAND
    data_dir: Path = Field(default_factory=get_default_data_dir)

    @model_validator(mode="after")
    def _check_retry_bounds(self) -> "PipelineSettings":
        if self.min_retry_wait_ms > self.max_random_retry_wait_ms:
            raise ValueError("min_retry_wait_ms must not exceed max_random_retry_wait_ms")
        if self.max_random_retry_wait_ms > self.max_retry_wait_ms:
            raise ValueError("max_random_retry_wait_ms must not exceed max_retry_wait_ms")
        return self

    @property
    def queue_path(self) -> Path:
        return self.data_dir / "queue" / "requests.jsonl"

    @property
    def storage_dir(self) -> Path:
        return self.data_dir / "storage"


def load_settings(path: Path | None = None) -> PipelineSettings:
    """
    Load settings from YAML and apply environment overrides.

    Args:
        path: Explicit config file (defaults to ~/.offline-api/config.yaml)

    Returns:
        Validated PipelineSettings

    Raises:
        ConfigError: If the file is unreadable or fails validation
    """
    config_path = path or get_config_path()
    data: dict[str, object] = {}

    if config_path.exists():
        try:
            with open(config_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
        except (yaml.YAMLError, OSError) as e:
            raise ConfigError(f"Cannot read config file {config_path}: {e}") from e
        if not isinstance(loaded, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")
        data.update(loaded)

    if base_url := os.environ.get("OFFLINE_API_BASE_URL"):
        data["base_url"] = base_url
    if data_dir := os.environ.get("OFFLINE_API_DATA_DIR"):
        data["data_dir"] = data_dir

    try:
        return PipelineSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {config_path}:\n{e}") from e
