"""Application settings — Pydantic-based configuration with YAML and env var support.

Configuration is loaded from (in order of precedence):
  1. Environment variables (INDEXSYNC_ prefix)
  2. YAML config file (if specified)
  3. Default values
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from indexsync.models.schema import IndexStatus
from indexsync.schema.strategy import SchemaManagementStrategy


class ServiceSettings(BaseModel):
    """Remote search service connection configuration."""

    hosts: list[str] = Field(default_factory=lambda: ["http://localhost:9200"], description="Service node URLs")
    username: str | None = Field(default=None, description="HTTP basic-auth username")
    password: str | None = Field(default=None, description="HTTP basic-auth password")
    api_key: str | None = Field(default=None, description="Encoded API key")
    verify_certs: bool = Field(default=True, description="Whether to verify TLS certificates")
    request_timeout: float = Field(default=60.0, description="HTTP request timeout in seconds")
    max_connections: int = Field(default=20, description="Connection pool size")

    @field_validator("hosts", mode="before")
    @classmethod
    def _parse_hosts(cls, v: Any) -> list[str]:
        """Parse hosts from JSON string (env var) or list."""
        if isinstance(v, str):
            import json

            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return [str(h) for h in parsed]
            except (json.JSONDecodeError, TypeError):
                pass
            # Single host as plain string
            return [v] if v else []
        return list(v)


class IndexSettings(BaseModel):
    """Per-index schema management configuration.

    ``schema_management_strategy`` must match an enumeration member exactly
    (case-sensitive); ``required_index_status`` is matched case-insensitively.
    """

    name: str | None = Field(default=None, description="Index name override")
    schema_management_strategy: SchemaManagementStrategy = Field(
        default=SchemaManagementStrategy.CREATE,
        description="What to do with the remote schema on bind/destroy",
    )
    required_index_status: IndexStatus = Field(
        default=IndexStatus.GREEN,
        description="Health status the index must reach before schema operations act",
    )
    index_management_wait_timeout: int = Field(
        default=10_000,
        description="Health wait timeout in milliseconds (non-negative)",
    )
    refresh_after_write: bool = Field(default=False, description="Refresh the index after each write batch")

    @field_validator("required_index_status", mode="before")
    @classmethod
    def _parse_status(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @field_validator("index_management_wait_timeout")
    @classmethod
    def _check_timeout(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"index_management_wait_timeout must be non-negative, got {v}")
        return v


class SchemaSettings(BaseModel):
    """Schema management configuration."""

    default: IndexSettings = Field(default_factory=IndexSettings, description="Defaults for every index")
    indexes: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        description="Per-index overrides, merged over the defaults",
    )
    compatible_types: dict[str, list[str]] | None = Field(
        default=None,
        description="Expected type -> remote types accepted in its place (None = built-in table)",
    )

    def properties_for(self, index_name: str) -> dict[str, Any]:
        """Raw properties of one index: defaults overlaid with its overrides.

        A ``name`` only applies when set for the index itself.
        """
        merged = self.default.model_dump(mode="json", exclude={"name"})
        merged.update(self.indexes.get(index_name, {}))
        return merged


class ProcessorSettings(BaseModel):
    """Backend request processor configuration."""

    workers: int = Field(default=2, ge=1, description="Number of async worker tasks")
    max_bulk_size: int = Field(default=250, ge=1, description="Maximum requests per bulk call")
    queue_size: int = Field(default=1000, ge=0, description="Async queue capacity (0 = unbounded)")


class ObservabilitySettings(BaseModel):
    """Observability configuration."""

    log_level: str = Field(default="info", description="Log level: debug, info, warning, error")
    log_format: str = Field(default="json", description="Log format: json, console")


class Settings(BaseSettings):
    """Root application settings.

    Configuration is loaded from environment variables with the INDEXSYNC_ prefix.
    Nested settings use double underscores: INDEXSYNC_PROCESSOR__WORKERS=4

    Example:
        INDEXSYNC_SERVICE__HOSTS='["http://es1:9200", "http://es2:9200"]'
        INDEXSYNC_SCHEMA_MANAGEMENT__DEFAULT__SCHEMA_MANAGEMENT_STRATEGY=VALIDATE
        INDEXSYNC_OBSERVABILITY__LOG_FORMAT=console
    """

    model_config = {
        "env_prefix": "INDEXSYNC_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    app_name: str = Field(default="IndexSync", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")

    service: ServiceSettings = Field(default_factory=ServiceSettings)
    schema_management: SchemaSettings = Field(default_factory=SchemaSettings)
    processor: ProcessorSettings = Field(default_factory=ProcessorSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Settings:
        """Load settings from a YAML configuration file.

        Values from the YAML file are passed as init arguments, so they take
        precedence over environment variables for the keys they set.

        Args:
            path: Path to the YAML config file.

        Returns:
            Populated Settings instance.
        """
        import yaml  # type: ignore[import-untyped]

        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)
