"""Pydantic schema models for configuration.

This module defines the configuration models:
- Settings: Top-level configuration container (config.yaml)
- TransportSettings: Endpoint, batching and retry for log delivery
- ClientTransportConfig / ServerTransportConfig: the two delivery strategies
- RedactionSettings: Preset and extra sensitive names for the redaction policy
- StorageSettings: Local capped log store
- LoggingSettings: Level and output format for glean-logger's own logs
- CollectorSettings: Where the ingestion handler appends batches
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from glean_logger.paths import get_collector_log_dir, get_default_store_path
from glean_logger.redaction import PRESET_NAMES, RedactionPolicy, RedactionPolicyBuilder

if TYPE_CHECKING:
    from collections.abc import Mapping


class BatchMode(str, Enum):
    """When buffered log entries are flushed."""

    IMMEDIATE = "immediate"
    COUNT = "count"
    TIME = "time"


class BatchingConfig(BaseModel):
    """Batching policy.

    Attributes:
        mode: immediate, count or time
        interval: Seconds between flushes in time mode (default: 3.0)
        count_threshold: Buffer length that triggers a flush in count mode
    """

    model_config = ConfigDict(extra="forbid")

    mode: BatchMode = BatchMode.TIME
    interval: Annotated[float, Field(gt=0, le=3600)] = 3.0
    count_threshold: Annotated[int, Field(ge=1, le=10_000)] = 10


class RetryConfig(BaseModel):
    """Retry policy for failed batch deliveries.

    Attributes:
        enabled: If False, a failed batch is dropped after one attempt
        max_retries: Retries after the initial attempt (0-20, default: 3)
        initial_delay: Seconds before the first retry (default: 1.0)
        max_delay: Cap on any single delay in seconds (default: 30.0)
        backoff_multiplier: Growth factor between retries (default: 2.0)
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    max_retries: Annotated[int, Field(ge=0, le=20)] = 3
    initial_delay: Annotated[float, Field(ge=0)] = 1.0
    max_delay: Annotated[float, Field(ge=0)] = 30.0
    backoff_multiplier: Annotated[float, Field(ge=1)] = 2.0

    @model_validator(mode="after")
    def validate_delay_bounds(self) -> RetryConfig:
        """Ensure the cap is not below the first delay."""
        if self.max_delay < self.initial_delay:
            msg = "max_delay must be greater than or equal to initial_delay"
            raise ValueError(msg)
        return self

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        delay = self.initial_delay * self.backoff_multiplier ** (attempt - 1)
        return min(delay, self.max_delay)


class TransportSettings(BaseModel):
    """Delivery settings shared by both transport strategies.

    Attributes:
        endpoint: Collector URL, absolute or relative to base_url
        base_url: Origin used to resolve a relative endpoint
        batching: Batching policy
        retry: Retry policy
        timeout: Per-request timeout in seconds
        flush_on_exit: Register a process-exit hook that posts pending entries
        exit_timeout: Timeout in seconds for that last-chance post
    """

    model_config = ConfigDict(extra="forbid")

    endpoint: Annotated[str, Field(min_length=1)] = "/api/logs"
    base_url: str = "http://localhost:3000"
    batching: BatchingConfig = Field(default_factory=BatchingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    timeout: Annotated[float, Field(gt=0, le=300)] = 10.0
    flush_on_exit: bool = True
    exit_timeout: Annotated[float, Field(gt=0, le=60)] = 2.0


class ClientTransportConfig(TransportSettings):
    """Strategy for an interactive client: every entry is sent immediately."""

    batching: BatchingConfig = Field(
        default_factory=lambda: BatchingConfig(mode=BatchMode.IMMEDIATE)
    )


class ServerTransportConfig(TransportSettings):
    """Strategy for long-running processes: time-based batches, env-tunable."""

    flush_on_exit: bool = False

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
    ) -> ServerTransportConfig:
        """Build a config from the defaults plus LOGGER_* environment variables.

        Invalid values are logged and the default is kept.
        """
        from glean_logger.config.env import apply_env_overrides

        return apply_env_overrides(cls(), environ)


class RedactionSettings(BaseModel):
    """Redaction policy selection.

    Attributes:
        preset: basic, production, development or minimal
        extra_sensitive_fields: Field names added to the preset's set
        extra_sensitive_headers: Header names added to the preset's set
        max_depth: Override the preset's traversal depth (1-100)
        sampling_rate: Optional body sampling rate (0-1)
    """

    model_config = ConfigDict(extra="forbid")

    preset: str = "basic"
    extra_sensitive_fields: list[str] = Field(default_factory=list)
    extra_sensitive_headers: list[str] = Field(default_factory=list)
    max_depth: Annotated[int | None, Field(ge=1, le=100)] = None
    sampling_rate: Annotated[float | None, Field(ge=0, le=1)] = None

    @field_validator("preset")
    @classmethod
    def validate_preset(cls, v: str) -> str:
        """Validate preset is a known name."""
        if v.lower() not in PRESET_NAMES:
            msg = f"preset must be one of: {', '.join(PRESET_NAMES)}"
            raise ValueError(msg)
        return v.lower()

    def build_policy(self) -> RedactionPolicy:
        """Build the RedactionPolicy these settings describe."""
        builder = RedactionPolicyBuilder.preset(self.preset)
        if self.extra_sensitive_fields:
            builder.add_sensitive_fields(*self.extra_sensitive_fields)
        if self.extra_sensitive_headers:
            builder.add_sensitive_headers(*self.extra_sensitive_headers)
        if self.max_depth is not None:
            builder.max_depth(self.max_depth)
        if self.sampling_rate is not None:
            builder.sampling(self.sampling_rate)
        return builder.build()


class StorageSettings(BaseModel):
    """Local capped log store.

    Attributes:
        enabled: Persist entries locally (default: True)
        path: Database path (default: XDG data dir)
                Uses $XDG_DATA_HOME/glean-logger/logs.db
        max_entries: Entries kept before the oldest are evicted (1-10000, default: 100)
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    path: str | None = None
    max_entries: Annotated[int, Field(ge=1, le=10_000)] = 100

    def get_path(self) -> Path:
        """Get the store path, expanding ~ if needed."""
        if self.path:
            return Path(self.path).expanduser()
        return get_default_store_path()


class LoggingSettings(BaseModel):
    """Level filtering and output format.

    Attributes:
        level: Minimum level recorded by ClientLogger (default: debug)
        json_output: Render glean-logger's own logs as JSON (default: True)
        console: Echo entries to the console target (default: True)
    """

    model_config = ConfigDict(extra="forbid")

    level: Literal["debug", "info", "warn", "error", "fatal"] = "debug"
    json_output: bool = True
    console: bool = True


class CollectorSettings(BaseModel):
    """Ingestion handler output.

    Attributes:
        log_dir: Directory for browser.YYYY-MM-DD.log files
                 (default: $LOG_DIR or ./_logs)
    """

    model_config = ConfigDict(extra="forbid")

    log_dir: str | None = None

    def get_log_dir(self) -> Path:
        return get_collector_log_dir(self.log_dir)


class Settings(BaseModel):
    """Top-level configuration loaded from YAML.

    Attributes:
        version: Schema version (must be 1)
        transport: Delivery settings (client strategy defaults)
        redaction: Redaction policy selection
        storage: Local store settings
        logging: Level and format settings
        collector: Ingestion handler settings
    """

    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = 1
    transport: ClientTransportConfig = Field(default_factory=ClientTransportConfig)
    redaction: RedactionSettings = Field(default_factory=RedactionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    collector: CollectorSettings = Field(default_factory=CollectorSettings)
