"""Configuration models for apitree."""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_MAX_CONTENT_BYTES = 10 * 1024 * 1024


class DatabaseSettings(BaseModel):
    """Where the DuckDB database lives."""

    path: str = Field(
        default=":memory:", description="DuckDB file path, or :memory: for a scratch store"
    )


class ApiTreeSettings(BaseModel):
    """Global settings."""

    default_group_name: str = Field(
        default="Ungrouped", min_length=1, description="Root group for untagged imports"
    )
    max_apis_per_project: int | None = Field(
        default=None, ge=1, description="Project API quota enforced on import"
    )
    fetch_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Timeout for fetching OpenAPI documents by URL"
    )
    max_content_bytes: int = Field(
        default=DEFAULT_MAX_CONTENT_BYTES, ge=1, description="Largest accepted document"
    )
    max_rename_attempts: int = Field(
        default=100, ge=1, description="Suffixes tried before a rename gives up"
    )
    default_create_missing_groups: bool = Field(default=True)
    log_level: str = Field(default="WARNING", description="Root log level for the CLI")


class ApiTreeConfig(BaseModel):
    """Root configuration model."""

    version: int = Field(default=1)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    settings: ApiTreeSettings = Field(default_factory=ApiTreeSettings)
