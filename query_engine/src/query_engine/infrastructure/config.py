"""Configuration management for the query engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueryConfig(BaseModel):
    """Default per-query execution settings."""

    like_case_sensitive: bool = Field(
        default=True, description="Whether LIKE matching is case-sensitive"
    )
    nulls_first_on_desc: bool = Field(
        default=True, description="Sort NULLs first for DESC keys unless stated otherwise"
    )
    empty_ungrouped_emits_row: bool = Field(
        default=False,
        description="Emit one row (non-COUNT aggregates NULL) for ungrouped empty input",
    )
    max_result_rows: int | None = Field(
        default=None, ge=1, description="Upper bound on rows collected into a result"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    log_max_field_chars: int = Field(
        default=2000, ge=80, description="Clip logged plans and rows longer than this"
    )
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="query_engine", description="Service name for tracing")
    metrics_enabled: bool = Field(default=False, description="Expose Prometheus metrics over HTTP")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class Config(BaseSettings):
    """Main configuration for the query engine."""

    model_config = SettingsConfigDict(
        env_prefix="QUERY_ENGINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    query: QueryConfig = Field(default_factory=QueryConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
