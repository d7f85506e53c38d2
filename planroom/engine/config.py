"""
Planroom Configuration — Load and validate planroom.yaml.

Usage:
    from planroom.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from planroom.engine.errors import PlanroomConfigError

CONFIG_FILE_NAME = "planroom.yaml"


class DatabaseConfig(BaseModel):
    url: str = "sqlite:///planroom.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    create_tables: bool = False


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    enabled: bool = True
    level: str = "INFO"
    directory: str = ".planroom/logs"
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level '{v}'")
        return level


class DocumentsConfig(BaseModel):
    max_upload_size_mb: int = Field(default=50, gt=0)
    allowed_content_types: List[str] = Field(default_factory=lambda: ["*/*"])
    blob_root: str = ".planroom/blobs"


class PlanroomConfig(BaseModel):
    """Root model for planroom.yaml."""

    environment: str = "dev"
    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    documents: DocumentsConfig = DocumentsConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_config: Optional[PlanroomConfig] = None


def _find_config_file() -> Optional[Path]:
    """Walk up from CWD looking for planroom.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate
    return None


def load_config(config_path: Optional[str] = None) -> PlanroomConfig:
    """
    Load and validate planroom.yaml.

    Args:
        config_path: Explicit path. If None, auto-discovers from CWD upwards.

    Returns the validated config; defaults when no file exists. Raises
    PlanroomConfigError for unreadable YAML or values that fail validation.
    """
    global _config

    path = Path(config_path) if config_path else _find_config_file()
    if path is None or not path.exists():
        _config = PlanroomConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise PlanroomConfigError(f"Could not parse {path}: {e}", path=str(path)) from e

    if not isinstance(raw, dict):
        raise PlanroomConfigError(f"{path} must contain a mapping", path=str(path))

    # Accept both a top-level layout and one nested under "planroom:"
    data = raw.get("planroom", raw)

    try:
        _config = PlanroomConfig(**data)
    except ValidationError as e:
        raise PlanroomConfigError(
            f"Invalid configuration in {path}",
            path=str(path),
            validation_errors=e.errors(),
        ) from e
    return _config


def get_config() -> PlanroomConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config
