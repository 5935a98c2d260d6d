"""Configuration settings for the CDN File Server."""
import json
from pathlib import Path
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

# Network
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080

# Storage limits
DEFAULT_MAX_UPLOAD_SIZE = 10 * 1024 * 1024  # 10MB
CHUNK_SIZE = 8192  # 8KB chunks for streaming

# Directory paths
DEFAULT_UPLOADS_DIR = "./uploads"
DEFAULT_LOG_DIR = "./logs"

# Authentication
AUTH_REALM = "CDN Authentication"
DEFAULT_AUTH_FAILURE_THRESHOLD = 5
DEFAULT_AUTH_FAILURE_WINDOW_SECONDS = 60

# Remote logging
DEFAULT_LOGZIO_URL = "https://listener.logz.io:8071"


class ConfigError(Exception):
    """Raised when the configuration file cannot be loaded."""


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    host: str = DEFAULT_HOST
    port: int = Field(DEFAULT_PORT, ge=1, le=65535)
    uploads_dir: Path = Field(
        Path(DEFAULT_UPLOADS_DIR),
        validation_alias=AliasChoices("uploads_dir", "upload_directory"),
    )
    max_upload_size: int = Field(DEFAULT_MAX_UPLOAD_SIZE, gt=0)

    require_auth: bool = True
    username: str = ""
    password: str = ""

    log_level: str = "INFO"
    log_dir: Path = Path(DEFAULT_LOG_DIR)
    logzio_token: Optional[str] = None
    logzio_url: str = DEFAULT_LOGZIO_URL

    auth_failure_threshold: int = Field(DEFAULT_AUTH_FAILURE_THRESHOLD, gt=0)
    auth_failure_window_seconds: int = Field(DEFAULT_AUTH_FAILURE_WINDOW_SECONDS, gt=0)

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def check_credentials(self):
        if self.require_auth and not (self.username and self.password):
            raise ValueError("username and password are required when require_auth is enabled")
        return self


def load_config(path: Union[str, Path]) -> Settings:
    """Load settings from a JSON file.

    Args:
        path: Location of the JSON configuration file

    Returns:
        Settings: The validated, immutable settings

    Raises:
        ConfigError: If the file is unreadable, is not a JSON object or fails validation
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e
