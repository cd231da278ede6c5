from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the document store."""

    database_url: str = env_field(
        "postgresql://localhost:5432/jsondoc", "DATABASE_URL"
    )
    pool_min_size: int = env_field(1, "DB_POOL_MIN_SIZE", ge=0)
    pool_max_size: int = env_field(10, "DB_POOL_MAX_SIZE", ge=1)
    pool_timeout: float = env_field(
        30.0,
        "DB_POOL_TIMEOUT",
        gt=0,
        description="Seconds to wait for a pooled connection before failing",
    )
    lookup_column: bool = env_field(
        True,
        "JSONDOC_LOOKUP_COLUMN",
        description="Create an indexed generated column over $.id for new collections",
    )
    collections: list[str] = env_field(
        [],
        "JSONDOC_COLLECTIONS",
        description="Collections to create when the store starts (comma separated)",
    )
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("collections", mode="before")
    @classmethod
    def _split_collections(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "Settings":
        if self.pool_min_size > self.pool_max_size:
            raise ValueError(
                f"DB_POOL_MIN_SIZE ({self.pool_min_size}) exceeds DB_POOL_MAX_SIZE ({self.pool_max_size})"
            )
        return self


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
