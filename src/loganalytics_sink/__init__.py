"""
Log Analytics Sink - batched log shipping to Azure Monitor Logs

Buffers structured log events and delivers them in batches to a Data
Collection Rule stream through the Logs Ingestion API:
- Size- and time-based batching with a bounded buffer
- One delivery in flight at a time, in release order
- Bearer token from the OAuth2 client-credentials grant, renewed on failure
- ``logging.Handler`` bridge for standard library logging
"""

from .config import ConfigurationSettings, LoggerCredential, NamingStrategy, SinkConfig
from .diagnostics import enable_self_log
from .errors import (
    AuthError,
    ConfigError,
    DeliveryError,
    SerializationError,
    SinkError,
    TransportError,
)
from .events import Batch, DeliveryOutcome, DeliveryState, LogEvent, LogLevel
from .handler import LogAnalyticsHandler, create_handler
from .sink import LogAnalyticsSink

__version__ = "0.1.0"

__all__ = [
    "LogAnalyticsSink",
    "LogAnalyticsHandler",
    "create_handler",
    "LoggerCredential",
    "ConfigurationSettings",
    "NamingStrategy",
    "SinkConfig",
    "LogEvent",
    "LogLevel",
    "Batch",
    "DeliveryOutcome",
    "DeliveryState",
    "SinkError",
    "ConfigError",
    "AuthError",
    "TransportError",
    "SerializationError",
    "DeliveryError",
    "enable_self_log",
]
