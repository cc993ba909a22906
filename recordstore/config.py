from __future__ import annotations

import os
from collections import ChainMap
from functools import lru_cache
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from recordstore.logging import get_logger

logger = get_logger(__name__)


def env_field(default: Any, env: str, **kwargs):
    """Declare a settings field read from the ``env`` variable."""
    return Field(default, json_schema_extra={"env": env}, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the record stores."""

    database_url: str = env_field(
        "postgresql://localhost:5432/recordstore", "DATABASE_URL"
    )
    use_memory_store: bool = env_field(
        False,
        "USE_MEMORY_STORE",
        description="Serve collections from process memory instead of Postgres",
    )
    pool_min_size: int = env_field(
        1, "DB_POOL_MIN_SIZE", description="Connections kept open by the pool"
    )
    pool_max_size: int = env_field(
        10, "DB_POOL_MAX_SIZE", description="Upper bound on pooled connections"
    )
    test_mode: bool = env_field(
        False,
        "TEST_MODE",
        description="Allow test-only helpers such as rebuilding the shared store",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def env_names(cls) -> dict[str, str]:
        """Map each field to the variable it is read from."""
        return {
            name: (field.json_schema_extra or {}).get("env", name.upper())
            for name, field in cls.model_fields.items()
        }

    @classmethod
    def from_env(cls, env_file: str = ".env") -> "Settings":
        """Build settings from the process environment, falling back to ``env_file``."""
        sources = ChainMap(os.environ, dotenv_values(env_file))
        return cls(
            **{
                name: sources[variable]
                for name, variable in cls.env_names().items()
                if sources.get(variable) is not None
            }
        )

    @field_validator("database_url")
    @classmethod
    def _require_database_url(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("DATABASE_URL must not be empty")
        return value.strip()

    @field_validator("pool_min_size", "pool_max_size")
    @classmethod
    def _positive_pool_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("pool sizes must be at least 1")
        return value

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "Settings":
        if self.pool_max_size < self.pool_min_size:
            raise ValueError("DB_POOL_MAX_SIZE must be >= DB_POOL_MIN_SIZE")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process settings, loaded and validated on first call."""
    settings = Settings.from_env()
    logger.debug(
        "settings_loaded",
        use_memory_store=settings.use_memory_store,
        test_mode=settings.test_mode,
    )
    return settings


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""
    get_settings.cache_clear()
