"""Client lifecycle events and the sinks that observe them."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Observable points in a client request's life.

    Attributes:
        CONN_ACQUIRE: The driver asks the pool for a connection.
        DIAL_START: The pool had no usable connection and dials a new one.
        DIAL_DONE: Dial finished, successfully or not.
        CONN_OBTAINED: A connection was handed to the request.
        IDLE_RETURN: After the response, the connection went back to the
            idle pool or was dropped.
        IDLE_DISCARDED: A pooled idle connection was closed before reuse.
    """

    CONN_ACQUIRE = "conn_acquire"
    DIAL_START = "dial_start"
    DIAL_DONE = "dial_done"
    CONN_OBTAINED = "conn_obtained"
    IDLE_RETURN = "idle_return"
    IDLE_DISCARDED = "idle_discarded"


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    """One lifecycle observation.

    Attributes:
        kind: What happened.
        request: Request number the event belongs to, 0 outside any request.
        timestamp: ``time.monotonic()`` at emission.
        address: Remote ``host:port``.
        local_address: Local ``host:port`` of the connection, once known.
        reused: CONN_OBTAINED only, the connection served a request before.
        was_idle: CONN_OBTAINED only, the connection came from the idle pool.
        idle_time: Seconds the connection spent idle.
        success: DIAL_DONE / IDLE_RETURN outcome.
        error: Failure text for unsuccessful DIAL_DONE / IDLE_RETURN.
    """

    kind: EventKind
    request: int
    timestamp: float
    address: str | None = None
    local_address: str | None = None
    reused: bool | None = None
    was_idle: bool | None = None
    idle_time: float | None = None
    success: bool | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serializable form, used for structured logging."""
        data = asdict(self)
        data["kind"] = self.kind.value
        return {key: value for key, value in data.items() if value is not None}

    def describe(self) -> str:
        """Human readable trace line."""
        prefix = f"client trace [req {self.request}]:"
        match self.kind:
            case EventKind.CONN_ACQUIRE:
                return f"{prefix} trying to get a connection for {self.address}"
            case EventKind.DIAL_START:
                return f"{prefix} dialing new connection to tcp:{self.address}"
            case EventKind.DIAL_DONE if self.success:
                return (
                    f"{prefix} successfully connected to tcp:{self.address}"
                    f" from {self.local_address}"
                )
            case EventKind.DIAL_DONE:
                return f"{prefix} failed to connect to tcp:{self.address}: {self.error}"
            case EventKind.CONN_OBTAINED:
                return (
                    f"{prefix} got a connection: reused={self.reused},"
                    f" was_idle={self.was_idle}, idle_time={self.idle_time or 0.0:.3f}s"
                    f" ({self.local_address})"
                )
            case EventKind.IDLE_RETURN if self.success:
                return f"{prefix} connection returned to idle pool"
            case EventKind.IDLE_RETURN:
                return f"{prefix} failed to put connection back to idle pool: {self.error}"
            case EventKind.IDLE_DISCARDED:
                return (
                    f"{prefix} idle connection {self.local_address} -> {self.address}"
                    f" closed after {self.idle_time or 0.0:.3f}s idle"
                )
        return f"{prefix} {self.kind.value}"


class EventSink(Protocol):
    """Callable receiving every lifecycle event in emission order."""

    def __call__(self, event: LifecycleEvent) -> None: ...


class LoggingEventSink:
    """Writes lifecycle events to a log stream.

    Args:
        structured: Emit JSON lines instead of trace text (default: False).
        log: Logger to write to (default: this module's logger).
    """

    def __init__(self, structured: bool = False, log: logging.Logger | None = None) -> None:
        self._structured = structured
        self._logger = log or logger

    def __call__(self, event: LifecycleEvent) -> None:
        if self._structured:
            self._logger.info(json.dumps({"event": "client_trace", **event.to_dict()}))
        else:
            self._logger.info(event.describe())


class RecordingEventSink:
    """Keeps events in memory, optionally forwarding them to another sink."""

    def __init__(self, forward: EventSink | None = None) -> None:
        self.events: list[LifecycleEvent] = []
        self._forward = forward

    def __call__(self, event: LifecycleEvent) -> None:
        self.events.append(event)
        if self._forward is not None:
            self._forward(event)

    def of_kind(self, kind: EventKind, request: int | None = None) -> list[LifecycleEvent]:
        """Events of one kind, optionally restricted to one request."""
        return [
            event
            for event in self.events
            if event.kind is kind and (request is None or event.request == request)
        ]
