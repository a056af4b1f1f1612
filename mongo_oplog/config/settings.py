"""
Pydantic Settings Models for oplog tailing configuration

Connection strings and credentials are not part of these settings: they belong
to the MongoClient the caller constructs.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mongo_oplog.cdc.cursor import OPLOG_NAMESPACE, CursorOptions, split_namespace


class CursorSettings(BaseSettings):
    """Tailable cursor options"""

    await_data: bool = Field(default=True, description="Block server-side awaiting new entries")
    no_cursor_timeout: bool = Field(default=True, description="Never reap the cursor while idle")
    batch_size: Optional[int] = Field(default=None, ge=1, le=100000)
    max_await_time_ms: Optional[int] = Field(default=None, ge=1, le=3600000)
    requery_interval_seconds: float = Field(
        default=1.0, ge=0.0, le=300.0, description="Pause after reaching the end of the oplog"
    )

    model_config = SettingsConfigDict(env_prefix="OPLOG_CURSOR_")

    def to_options(self) -> CursorOptions:
        return CursorOptions(
            await_data=self.await_data,
            no_cursor_timeout=self.no_cursor_timeout,
            batch_size=self.batch_size,
            max_await_time_ms=self.max_await_time_ms,
            requery_interval_seconds=self.requery_interval_seconds,
        )


class ObservabilitySettings(BaseSettings):
    """Metrics and logging configuration"""

    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    log_format: str = Field(default="json", pattern="^(json|console)$")
    metrics_enabled: bool = Field(default=False)
    metrics_port: int = Field(default=9090, ge=1024, le=65535)

    model_config = SettingsConfigDict(env_prefix="OPLOG_")


class OplogSettings(BaseSettings):
    """Complete oplog tailing configuration"""

    namespace: str = Field(default=OPLOG_NAMESPACE, description="Capped collection to tail")
    cursor: CursorSettings = Field(default_factory=CursorSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_prefix="OPLOG_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        split_namespace(v)
        return v
