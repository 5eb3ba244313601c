"""NORMAL_HTTP behavior engine for HTTP/2 over TLS, built on the h2 library.

aiohttp only speaks HTTP/1.1, so scenarios with ``use_http2`` run this engine
instead. It serves the same handler as the HTTP/1.1 engine and closes a
connection with GOAWAY once it has had no open streams for
``server_idle_timeout`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import time
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlsplit

from h2.config import H2Configuration
from h2.connection import H2Connection
from h2.events import (
    ConnectionTerminated,
    DataReceived,
    RequestReceived,
    StreamEnded,
    StreamReset,
)
from h2.exceptions import ProtocolError, StreamClosedError

from netsimulate.catalog import Scenario, ServerMode
from netsimulate.exceptions import ListenerBindError
from netsimulate.server.base import respond

logger = logging.getLogger(__name__)


@dataclass
class _PendingRequest:
    method: str
    path: str
    body: bytearray = field(default_factory=bytearray)


class _H2Session:
    """One server-side HTTP/2 connection."""

    def __init__(
        self,
        scenario: Scenario,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        self._scenario = scenario
        self._reader = reader
        self._writer = writer
        self._conn = H2Connection(
            config=H2Configuration(client_side=False, header_encoding="utf-8")
        )
        self._pending: dict[int, _PendingRequest] = {}
        self._streams: set[asyncio.Task[None]] = set()
        self._last_activity = time.monotonic()
        self._terminated = False

    def _read_timeout(self) -> float | None:
        idle = self._scenario.server_idle_timeout
        if idle <= 0:
            return None
        if self._streams:
            return idle
        return max(0.0, idle - (time.monotonic() - self._last_activity))

    async def _flush(self) -> None:
        data = self._conn.data_to_send()
        if data:
            self._writer.write(data)
            await self._writer.drain()

    async def serve(self) -> None:
        self._conn.initiate_connection()
        await self._flush()

        try:
            while not self._terminated:
                try:
                    data = await asyncio.wait_for(
                        self._reader.read(65536), timeout=self._read_timeout()
                    )
                except TimeoutError:
                    if self._streams:
                        continue
                    logger.info(
                        "server: h2 connection idle for %.1f sec, sending GOAWAY",
                        self._scenario.server_idle_timeout,
                    )
                    self._conn.close_connection()
                    await self._flush()
                    return

                if not data:
                    logger.info("server: h2 peer closed the connection")
                    return

                self._last_activity = time.monotonic()
                try:
                    events = self._conn.receive_data(data)
                except ProtocolError as exc:
                    logger.warning("server: h2 protocol error: %s, closing", exc)
                    return

                for event in events:
                    self._dispatch(event)
                await self._flush()
        finally:
            for task in self._streams:
                task.cancel()

    def _dispatch(self, event: object) -> None:
        if isinstance(event, RequestReceived):
            headers = dict(event.headers)
            self._pending[event.stream_id] = _PendingRequest(
                method=headers.get(":method", "GET"),
                path=headers.get(":path", "/"),
            )
        elif isinstance(event, DataReceived):
            pending = self._pending.get(event.stream_id)
            if pending is not None:
                pending.body.extend(event.data)
            self._conn.acknowledge_received_data(
                event.flow_controlled_length, event.stream_id
            )
        elif isinstance(event, StreamEnded):
            pending = self._pending.pop(event.stream_id, None)
            if pending is not None:
                task = asyncio.create_task(self._respond(event.stream_id, pending))
                self._streams.add(task)
                task.add_done_callback(self._stream_done)
        elif isinstance(event, StreamReset):
            self._pending.pop(event.stream_id, None)
            logger.info("server: h2 stream %d reset by peer", event.stream_id)
        elif isinstance(event, ConnectionTerminated):
            logger.info("server: h2 peer sent GOAWAY (error code %s)", event.error_code)
            self._terminated = True

    def _stream_done(self, task: asyncio.Task[None]) -> None:
        self._streams.discard(task)
        self._last_activity = time.monotonic()

    async def _respond(self, stream_id: int, pending: _PendingRequest) -> None:
        query = parse_qs(urlsplit(pending.path).query)
        query_num = query.get("req", [""])[0]

        async def read_body() -> bytes:
            return bytes(pending.body)

        result = await respond(self._scenario, pending.method, query_num, read_body)
        body = result.body.encode("utf-8")
        head_only = pending.method == "HEAD"
        try:
            self._conn.send_headers(
                stream_id,
                [
                    (":status", str(result.status)),
                    ("content-type", "text/plain; charset=utf-8"),
                    ("content-length", str(len(body))),
                ],
                end_stream=head_only,
            )
            if not head_only:
                self._conn.send_data(stream_id, body, end_stream=True)
            await self._flush()
        except (StreamClosedError, ProtocolError) as exc:
            logger.warning("server: h2 stream %d closed before response: %s", stream_id, exc)
        except ConnectionError as exc:
            logger.warning("server: error writing h2 response: %s", exc)


class H2BehaviorEngine:
    """TLS server that serves NORMAL_HTTP over HTTP/2.

    Args:
        scenario: Active scenario, its mode must be NORMAL_HTTP.
        host: Address to bind to.
        port: Port to listen on, 0 picks an ephemeral port.
        ssl_context: TLS context offering ``h2`` through ALPN.
    """

    def __init__(
        self,
        scenario: Scenario,
        host: str = "127.0.0.1",
        port: int = 8443,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        if scenario.server_mode is not ServerMode.NORMAL_HTTP:
            raise ValueError(f"H2BehaviorEngine cannot serve {scenario.server_mode.value}")
        if ssl_context is None:
            raise ValueError("HTTP/2 is only served over TLS")

        self._scenario = scenario
        self._host = host
        self._port = port
        self._ssl_context = ssl_context
        self._server: asyncio.Server | None = None
        self._bound_port: int | None = None
        self._connections: set[asyncio.Task[None]] = set()

    @property
    def mode(self) -> ServerMode:
        """Server mode implemented by the engine."""
        return ServerMode.NORMAL_HTTP

    @property
    def bound_port(self) -> int | None:
        """Port actually bound, None while stopped."""
        return self._bound_port

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)

        peer = writer.get_extra_info("peername")
        ssl_object = writer.get_extra_info("ssl_object")
        alpn = ssl_object.selected_alpn_protocol() if ssl_object is not None else None
        try:
            if alpn != "h2":
                logger.warning("server: %s did not negotiate h2 (alpn=%r), closing", peer, alpn)
                return
            logger.info("server: new h2 connection from %s", peer)
            await _H2Session(self._scenario, reader, writer).serve()
        except (ConnectionError, ssl.SSLError) as exc:
            logger.info("server: h2 connection from %s lost: %s", peer, exc)
        finally:
            if task is not None:
                self._connections.discard(task)
            writer.close()

    async def start(self) -> None:
        """Start the TLS listener.

        Raises:
            RuntimeError: If the server is already running.
            ListenerBindError: If the address cannot be bound.
        """
        if self._server is not None:
            raise RuntimeError("Server is already running")

        try:
            self._server = await asyncio.start_server(
                self._handle_client, self._host, self._port, ssl=self._ssl_context
            )
        except OSError as exc:
            raise ListenerBindError(f"{self._host}:{self._port}", exc) from exc

        self._bound_port = self._server.sockets[0].getsockname()[1]
        logger.info("Starting HTTP/2 server on %s:%s", self._host, self._bound_port)

    async def stop(self) -> None:
        """Stop the listener and drop open connections."""
        if self._server is None:
            return

        self._server.close()
        for task in list(self._connections):
            task.cancel()
        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)
        await self._server.wait_closed()
        self._server = None
        self._bound_port = None
        logger.info("server: stopped")
