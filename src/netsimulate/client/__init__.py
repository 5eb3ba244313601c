"""Request driver and connection lifecycle observation (client side)."""

from netsimulate.client.driver import IDEMPOTENT_METHODS, RequestDriver, build_client_ssl_context
from netsimulate.client.events import (
    EventKind,
    EventSink,
    LifecycleEvent,
    LoggingEventSink,
    RecordingEventSink,
)
from netsimulate.client.models import ConnectionConfig, DriveResult, RequestOutcome
from netsimulate.client.tracing import ConnectionTracer, TracingBackend, TracingTransport

__all__ = [
    "IDEMPOTENT_METHODS",
    "ConnectionConfig",
    "ConnectionTracer",
    "DriveResult",
    "EventKind",
    "EventSink",
    "LifecycleEvent",
    "LoggingEventSink",
    "RecordingEventSink",
    "RequestDriver",
    "RequestOutcome",
    "TracingBackend",
    "TracingTransport",
    "build_client_ssl_context",
]
