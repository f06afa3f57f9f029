"""Configuration management for the plan engine."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from plan_engine.domain.value_objects.dialect import (
    Dialect,
    DialectConfig,
    WindowRowOrder,
)


class CompilerConfig(BaseModel):
    """SQL compiler configuration."""

    dialect: Dialect = Field(default=Dialect.REFERENCE, description="Target SQL dialect")
    identifier_quoting: bool = Field(default=True, description="Quote every identifier")
    pretty: bool = Field(default=False, description="Emit indented multi-line SQL")

    def to_dialect_config(self) -> DialectConfig:
        """Build the dialect options handed to the SQL compiler."""
        return DialectConfig(
            dialect=self.dialect,
            identifier_quoting=self.identifier_quoting,
            pretty=self.pretty,
        )


class InterpreterConfig(BaseModel):
    """In-memory interpreter configuration."""

    window_row_order: WindowRowOrder = Field(
        default=WindowRowOrder.PARTITION,
        description="Row order produced by a windowed extend",
    )


class BackendConfig(BaseModel):
    """Reference backend configuration."""

    database: str = Field(default=":memory:", description="DuckDB database path")
    threads: int = Field(default=1, ge=1, le=256, description="DuckDB worker threads")


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="plan_engine", description="Service name for tracing")
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class Config(BaseSettings):
    """Main configuration for the plan engine."""

    model_config = SettingsConfigDict(
        env_prefix="PLAN_ENGINE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    compiler: CompilerConfig = Field(default_factory=CompilerConfig)
    interpreter: InterpreterConfig = Field(default_factory=InterpreterConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
