"""Configuration loading and validation."""

from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, field_validator


def _validate_base_url(value: str) -> str:
    """Require an absolute http(s) URL and drop any trailing slash."""
    value = value.strip()
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        msg = f"Invalid base URL '{value}': expected an absolute http(s) URL"
        raise ValueError(msg)
    return value.rstrip("/")


def _require_text(value: str) -> str:
    value = value.strip()
    if not value:
        msg = "must not be empty"
        raise ValueError(msg)
    return value


class TestRailConfig(BaseModel):
    """TestRail connection configuration."""

    base_url: str
    user: str
    token_env: str = "TESTRAIL_API_TOKEN"
    page_size: int = Field(default=250, ge=1, le=250, description="Items per page (max 250)")
    min_request_interval_seconds: float = Field(
        default=0.333, ge=0, description="Minimum spacing between two API calls"
    )
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate the TestRail site URL."""
        return _validate_base_url(v)

    @field_validator("user", "token_env")
    @classmethod
    def validate_required(cls, v: str) -> str:
        """Reject empty credentials."""
        return _require_text(v)


class JiraConfig(BaseModel):
    """Jira connection and destination field configuration."""

    base_url: str
    email: str
    token_env: str = "JIRA_API_TOKEN"
    coverage_field_id: str
    pass_rate_field_id: str
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate the Jira site URL."""
        return _validate_base_url(v)

    @field_validator("email", "token_env", "coverage_field_id", "pass_rate_field_id")
    @classmethod
    def validate_required(cls, v: str) -> str:
        """Reject empty credentials and field ids."""
        return _require_text(v)


class JobConfig(BaseModel):
    """Scheduled job configuration."""

    time_budget_seconds: float = Field(
        default=840.0,
        gt=0,
        description="Stop after the project that crosses this elapsed time",
    )


class StorageConfig(BaseModel):
    """Checkpoint storage configuration."""

    checkpoint_path: Path = Field(default=Path("./data/checkpoint.json"))


class Config(BaseModel):
    """Root configuration model."""

    testrail: TestRailConfig
    jira: JiraConfig
    job: JobConfig = Field(default_factory=JobConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


def load_config(path: Path) -> Config:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ValidationError: If the config is invalid.
    """
    if not path.exists():
        msg = f"Config file not found: {path}"
        raise FileNotFoundError(msg)

    with path.open() as f:
        raw_config: dict[str, Any] = yaml.safe_load(f) or {}

    return Config.model_validate(raw_config)
