"""Connection lifecycle tracing for the httpx client.

httpx exposes no hooks for pool internals, so tracing sits one layer down: a
wrapping ``httpcore`` network backend sees every dial, and the streams it
returns see the first write of each request (the moment a pooled connection
is handed over) and every close. The request currently being served is
carried in a context variable set by the driver around each attempt.
"""

from __future__ import annotations

import contextvars
import logging
import ssl
import time
import typing
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

import httpcore
import httpx

from netsimulate.client.events import EventKind, EventSink, LifecycleEvent

logger = logging.getLogger(__name__)


def _format_address(address: typing.Any) -> str | None:
    if isinstance(address, tuple) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    return None if address is None else str(address)


@dataclass
class TracedConnection:
    """Bookkeeping for one dialed connection, shared across a TLS upgrade.

    Attributes:
        address: Remote ``host:port``.
        local_address: Local ``host:port``.
        uses: Requests that have been handed this connection.
        active: Requests currently using it (several under HTTP/2).
        idle_since: ``time.monotonic()`` when it last went idle, None in use.
        closed: Whether the connection has been closed.
    """

    address: str
    local_address: str | None = None
    uses: int = 0
    active: int = 0
    idle_since: float | None = None
    closed: bool = False


@dataclass
class AttemptTrace:
    """State of one transmission attempt of a numbered request."""

    request: int
    address: str
    connection: TracedConnection | None = None
    dialed: bool = False
    reused: bool = False
    started_at: float = field(default_factory=time.monotonic)


_current_attempt: contextvars.ContextVar[AttemptTrace | None] = contextvars.ContextVar(
    "netsimulate_current_attempt", default=None
)


class ConnectionTracer:
    """Turns network backend activity into lifecycle events.

    Sink failures are logged and never reach the request path.

    Args:
        sink: Receiver of every emitted event.
    """

    def __init__(self, sink: EventSink) -> None:
        self._sink = sink

    def emit(self, kind: EventKind, request: int, **details: typing.Any) -> None:
        event = LifecycleEvent(kind=kind, request=request, timestamp=time.monotonic(), **details)
        try:
            self._sink(event)
        except Exception as exc:
            logger.warning("client: event sink failed on %s: %s", kind.value, exc)

    @staticmethod
    def current() -> AttemptTrace | None:
        """The attempt running in the calling task, if any."""
        return _current_attempt.get()

    @contextmanager
    def attempt(self, request: int, address: str) -> Iterator[AttemptTrace]:
        """Scope one attempt: emit CONN_ACQUIRE and bind the attempt to the task."""
        trace = AttemptTrace(request=request, address=address)
        token = _current_attempt.set(trace)
        self.emit(EventKind.CONN_ACQUIRE, request, address=address)
        try:
            yield trace
        finally:
            _current_attempt.reset(token)

    def dial_started(self, address: str) -> None:
        trace = self.current()
        if trace is not None:
            trace.dialed = True
        self.emit(EventKind.DIAL_START, trace.request if trace else 0, address=address)

    def dial_finished(
        self, address: str, local_address: str | None = None, error: Exception | None = None
    ) -> None:
        trace = self.current()
        self.emit(
            EventKind.DIAL_DONE,
            trace.request if trace else 0,
            address=address,
            local_address=local_address,
            success=error is None,
            error=None if error is None else str(error) or type(error).__name__,
        )

    def connection_used(self, conn: TracedConnection) -> None:
        """Record the hand-over of ``conn`` to the current attempt.

        Called on every write; only the first write of an attempt counts.
        """
        trace = self.current()
        if trace is None or trace.connection is not None:
            return

        now = time.monotonic()
        was_idle = conn.idle_since is not None
        idle_time = now - conn.idle_since if conn.idle_since is not None else 0.0
        reused = conn.uses > 0
        conn.uses += 1
        conn.active += 1
        conn.idle_since = None
        trace.connection = conn
        trace.reused = reused
        self.emit(
            EventKind.CONN_OBTAINED,
            trace.request,
            address=conn.address,
            local_address=conn.local_address,
            reused=reused,
            was_idle=was_idle,
            idle_time=idle_time,
        )

    def connection_closed(self, conn: TracedConnection) -> None:
        if conn.closed:
            return
        conn.closed = True
        if conn.idle_since is None:
            return

        trace = self.current()
        self.emit(
            EventKind.IDLE_DISCARDED,
            trace.request if trace else 0,
            address=conn.address,
            local_address=conn.local_address,
            idle_time=time.monotonic() - conn.idle_since,
        )
        conn.idle_since = None

    def release(
        self,
        trace: AttemptTrace,
        response: httpx.Response | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Emit the idle-pool return outcome once an attempt is over."""
        conn = trace.connection
        if conn is None:
            return

        conn.active = max(0, conn.active - 1)
        if conn.closed:
            self.emit(
                EventKind.IDLE_RETURN,
                trace.request,
                address=conn.address,
                local_address=conn.local_address,
                success=False,
                error=_close_reason(response, error),
            )
            return

        if conn.active == 0:
            conn.idle_since = time.monotonic()
        self.emit(
            EventKind.IDLE_RETURN,
            trace.request,
            address=conn.address,
            local_address=conn.local_address,
            success=True,
        )


def _close_reason(response: httpx.Response | None, error: BaseException | None) -> str:
    if error is not None:
        return f"request failed: {str(error) or type(error).__name__}"
    if response is not None and response.headers.get("connection", "").lower() == "close":
        return "server requested connection close"
    return "connection not reusable or idle pool full"


class TracedStream(httpcore.AsyncNetworkStream):
    """Network stream reporting writes and closes to the tracer."""

    def __init__(
        self,
        stream: httpcore.AsyncNetworkStream,
        conn: TracedConnection,
        tracer: ConnectionTracer,
    ) -> None:
        self._stream = stream
        self._conn = conn
        self._tracer = tracer

    async def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        return await self._stream.read(max_bytes, timeout)

    async def write(self, buffer: bytes, timeout: float | None = None) -> None:
        self._tracer.connection_used(self._conn)
        await self._stream.write(buffer, timeout)

    async def aclose(self) -> None:
        self._tracer.connection_closed(self._conn)
        await self._stream.aclose()

    async def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.AsyncNetworkStream:
        tls_stream = await self._stream.start_tls(ssl_context, server_hostname, timeout)
        return TracedStream(tls_stream, self._conn, self._tracer)

    def get_extra_info(self, info: str) -> typing.Any:
        return self._stream.get_extra_info(info)


class TracingBackend(httpcore.AsyncNetworkBackend):
    """Network backend that traces TCP dials and wraps the resulting streams.

    Args:
        tracer: Receiver of dial and stream activity.
        backend: Backend doing the real I/O (default: ``httpcore.AnyIOBackend``).
    """

    def __init__(
        self,
        tracer: ConnectionTracer,
        backend: httpcore.AsyncNetworkBackend | None = None,
    ) -> None:
        self._tracer = tracer
        self._backend = backend or httpcore.AnyIOBackend()

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: typing.Iterable[typing.Any] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        address = f"{host}:{port}"
        self._tracer.dial_started(address)
        try:
            stream = await self._backend.connect_tcp(
                host,
                port,
                timeout=timeout,
                local_address=local_address,
                socket_options=socket_options,
            )
        except Exception as exc:
            self._tracer.dial_finished(address, error=exc)
            raise

        conn = TracedConnection(
            address=address,
            local_address=_format_address(stream.get_extra_info("client_addr")),
        )
        self._tracer.dial_finished(address, local_address=conn.local_address)
        return TracedStream(stream, conn, self._tracer)

    async def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: typing.Iterable[typing.Any] | None = None,
    ) -> httpcore.AsyncNetworkStream:
        return await self._backend.connect_unix_socket(
            path, timeout=timeout, socket_options=socket_options
        )

    async def sleep(self, seconds: float) -> None:
        await self._backend.sleep(seconds)


class TracingTransport(httpx.AsyncHTTPTransport):
    """httpx transport whose connection pool dials through a TracingBackend.

    Args:
        tracer: Receiver of connection activity.
        ssl_context: Client TLS context, None for plain HTTP.
        http2: Offer HTTP/2 through ALPN.
        limits: Pool limits.
    """

    def __init__(
        self,
        tracer: ConnectionTracer,
        *,
        ssl_context: ssl.SSLContext | None = None,
        http2: bool = False,
        limits: httpx.Limits | None = None,
    ) -> None:
        limits = limits or httpx.Limits()
        super().__init__(verify=ssl_context or True, http2=http2, limits=limits)
        self._pool = httpcore.AsyncConnectionPool(
            ssl_context=ssl_context,
            max_connections=limits.max_connections,
            max_keepalive_connections=limits.max_keepalive_connections,
            keepalive_expiry=limits.keepalive_expiry,
            http1=True,
            http2=http2,
            network_backend=TracingBackend(tracer),
        )
