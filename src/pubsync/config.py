"""Application configuration: settings schema and config.yaml loader"""

import json
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from pubsync.core.utils.slug import SLUG_MAX_LENGTH


CONFIG_FILE = "config.yaml"
ENV_PREFIX = "PUBSYNC_"


def _parse_mapping(value: Any) -> Any:
    """Accept a JSON object or 'create=3,upload=5' from env vars."""
    if not isinstance(value, str):
        return value
    value = value.strip()
    if value.startswith("{"):
        return json.loads(value)
    pairs = (p.split("=", 1) for p in value.split(",") if p.strip())
    return {k.strip(): v.strip() for k, v in pairs}


def _parse_list(value: Any) -> Any:
    """Accept a JSON list or a comma-separated string from env vars."""
    if not isinstance(value, str):
        return value
    value = value.strip()
    if value.startswith("["):
        return json.loads(value)
    return [p.strip() for p in value.split(",") if p.strip()]


class Settings(BaseModel):
    app_name:      str = "pubsync"
    db_url:        str = "sqlite:///pubsync.db"
    batch_size:    int = Field(default=25, ge=1, description="Operations per batch")
    batch_delay:   float = Field(default=0.0, ge=0, description="Seconds to wait between batches")
    delays:        dict[str, float] = Field(default_factory=dict, description="Per op kind batch delay override")
    retries:       dict[str, int] = Field(
        default_factory=lambda: {"upload": 3}, description="Attempts per op kind (create, update, relink, upload)",
    )
    retry_backoff: float = Field(default=0.5, ge=0, description="Exponential backoff multiplier in seconds")
    max_workers:   int = Field(default=1, ge=1, description="Threads per batch; 1 = sequential")
    match_workers: int = Field(default=1, ge=1, description="Threads for identity matching")
    slug_max_length: int = Field(default=SLUG_MAX_LENGTH, ge=1, description="Max normalized slug length")
    protected_categories: list[str] = Field(default_factory=list, description="Never reported as orphans")
    default_author: Optional[str] = Field(default=None, description="User name for articles with unknown authors")
    upload_unreferenced: bool = Field(default=False, description="Upload attachments no article uses as hero")
    flag_unreferenced_media: bool = Field(default=True, description="Report media no post uses as hero")
    blob_dir:      str = Field(default=".pubsync/blobs", description="Local blob storage directory")
    blob_base_url: str = Field(default="/media", description="Public URL prefix for stored blobs")
    fetch_timeout: float = Field(default=30.0, gt=0, description="Attachment download timeout in seconds")
    log_level:     str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$")

    @field_validator("delays", "retries", mode="before")
    @classmethod
    def _mapping(cls, value: Any) -> Any:
        return _parse_mapping(value)

    @field_validator("protected_categories", mode="before")
    @classmethod
    def _list(cls, value: Any) -> Any:
        return _parse_list(value)

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then PUBSYNC_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e

    for name in Settings.model_fields:
        if val := os.getenv(f"{ENV_PREFIX}{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
