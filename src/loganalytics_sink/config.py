"""Configuration for the Log Analytics sink."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .errors import ConfigError


API_VERSION = "2023-01-01"


class NamingStrategy(str, Enum):
    """How property names are written into the JSON payload."""
    DEFAULT = "default"          # As declared
    CAMEL_CASE = "camel_case"
    APPLICATION = "application"  # Application-provided serializer


@dataclass(frozen=True)
class LoggerCredential:
    """
    Where to send logs and how to authenticate.

    The client secret is kept out of ``repr`` so the credential can be
    logged or printed without leaking it.
    """
    endpoint: str
    immutable_id: str
    stream_name: str
    tenant_id: str
    client_id: str
    client_secret: str = field(repr=False)

    def __post_init__(self):
        missing = [
            name for name in (
                "endpoint", "immutable_id", "stream_name",
                "tenant_id", "client_id", "client_secret",
            )
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigError(f"Missing credential fields: {', '.join(missing)}")

    @property
    def ingestion_url(self) -> str:
        """Data Collection Rule stream URL batches are posted to."""
        endpoint = self.endpoint.rstrip("/")
        return (
            f"{endpoint}/dataCollectionRules/{self.immutable_id}"
            f"/streams/{self.stream_name}?api-version={API_VERSION}"
        )


@dataclass(frozen=True)
class ConfigurationSettings:
    """Batching, serialization and timeout settings. Read-only after construction."""
    # Batching
    batch_size: int = 100
    buffer_size: int = 25_000  # Max records held before the oldest batch is dropped
    flush_interval_seconds: float = 2.0

    # Serialization
    naming_strategy: NamingStrategy = NamingStrategy.DEFAULT
    max_depth: int = 32  # 0 = unlimited
    application_serializer: Callable[[Any], bytes | str] | None = field(
        default=None, repr=False, compare=False
    )

    # Timeouts
    token_timeout_seconds: float = 30.0
    request_timeout_seconds: float = 30.0
    shutdown_timeout_seconds: float = 10.0

    def __post_init__(self):
        if not isinstance(self.naming_strategy, NamingStrategy):
            try:
                object.__setattr__(self, "naming_strategy", NamingStrategy(self.naming_strategy))
            except ValueError:
                raise ConfigError(f"Unknown naming strategy: {self.naming_strategy!r}") from None

        if self.batch_size < 1:
            raise ConfigError("batch_size must be >= 1")
        if self.buffer_size < self.batch_size:
            raise ConfigError("buffer_size must be >= batch_size")
        if self.max_depth < 0:
            raise ConfigError("max_depth must be >= 0")
        for name in (
            "flush_interval_seconds",
            "token_timeout_seconds",
            "request_timeout_seconds",
            "shutdown_timeout_seconds",
        ):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be > 0")


@dataclass(frozen=True)
class SinkConfig:
    """Main configuration container."""
    credential: LoggerCredential
    settings: ConfigurationSettings = field(default_factory=ConfigurationSettings)

    @classmethod
    def from_dict(cls, data: dict) -> SinkConfig:
        """Create config from dictionary."""
        credential_data = data.get("credential")
        if not credential_data:
            raise ConfigError("'credential' section is required")
        try:
            return cls(
                credential=LoggerCredential(**credential_data),
                settings=ConfigurationSettings(**data.get("settings", {})),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: str) -> SinkConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> SinkConfig:
        """
        Load config from ``LOGANALYTICS_*`` environment variables.

        Credential: LOGANALYTICS_ENDPOINT, LOGANALYTICS_IMMUTABLE_ID,
        LOGANALYTICS_STREAM_NAME, LOGANALYTICS_TENANT_ID,
        LOGANALYTICS_CLIENT_ID, LOGANALYTICS_CLIENT_SECRET.
        Settings: LOGANALYTICS_BATCH_SIZE, LOGANALYTICS_BUFFER_SIZE,
        LOGANALYTICS_FLUSH_INTERVAL, LOGANALYTICS_NAMING_STRATEGY,
        LOGANALYTICS_MAX_DEPTH.
        """
        env = os.environ if environ is None else environ

        credential = {
            key: env.get(f"LOGANALYTICS_{key.upper()}", "")
            for key in (
                "endpoint", "immutable_id", "stream_name",
                "tenant_id", "client_id", "client_secret",
            )
        }

        settings: dict[str, Any] = {}
        conversions = {
            "BATCH_SIZE": ("batch_size", int),
            "BUFFER_SIZE": ("buffer_size", int),
            "FLUSH_INTERVAL": ("flush_interval_seconds", float),
            "NAMING_STRATEGY": ("naming_strategy", str),
            "MAX_DEPTH": ("max_depth", int),
        }
        for suffix, (name, convert) in conversions.items():
            raw = env.get(f"LOGANALYTICS_{suffix}")
            if raw is None or raw == "":
                continue
            try:
                settings[name] = convert(raw)
            except ValueError:
                raise ConfigError(f"Invalid value for LOGANALYTICS_{suffix}: {raw!r}") from None

        return cls.from_dict({"credential": credential, "settings": settings})
