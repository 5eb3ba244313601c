"""Raw TCP behavior engine for the RST and multi-response server modes.

These modes never parse HTTP. Reading from accepted sockets is paused, so the
peer's request bytes stay unread in the kernel buffer; the engine waits a
short settle time instead of framing the request. Closing a socket that still
holds unread data makes the kernel answer with RST, which is exactly what the
multi-response scenarios reproduce.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import struct
from typing import Any, ClassVar, Protocol

from netsimulate.catalog import Scenario, ServerMode
from netsimulate.exceptions import ListenerBindError, UnknownServerModeError
from netsimulate.server.counter import ConnectionCounter

logger = logging.getLogger(__name__)

RAW_OK_RESPONSE = (
    b"HTTP/1.1 200 OK\r\n"
    b"Content-Length: 2\r\n"
    b"Content-Type: text/plain\r\n"
    b"\r\n"
    b"OK"
)

# Time given to the peer to send its request before the response is written.
REQUEST_SETTLE_DELAY = 0.1

# SO_LINGER on with a zero interval: close() discards queued data and sends RST.
_LINGER_RESET = struct.pack("ii", 1, 0)


class ConnectionBehavior(Protocol):
    """What the engine does with one accepted raw connection."""

    name: ClassVar[str]

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Service the connection. The engine closes the writer afterwards."""
        ...


async def _write_ok(writer: asyncio.StreamWriter, peer: Any) -> bool:
    try:
        writer.write(RAW_OK_RESPONSE)
        await writer.drain()
    except ConnectionError as exc:
        logger.warning("server: error writing response to %s: %s", peer, exc)
        return False
    logger.info("server: sent HTTP 200 OK response to %s", peer)
    return True


class CleanResponseBehavior:
    """Single 200 response followed by a close."""

    name: ClassVar[str] = "clean_response"

    def __init__(self, scenario: Scenario) -> None:
        self._response_delay = scenario.response_delay

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        if self._response_delay:
            logger.info("server: sleeping %.1f sec", self._response_delay)
            await asyncio.sleep(self._response_delay)

        await asyncio.sleep(REQUEST_SETTLE_DELAY)
        await _write_ok(writer, peer)


class ResetBehavior:
    """Immediate abortive close: RST instead of FIN, no bytes written."""

    name: ClassVar[str] = "reset"

    def __init__(self, scenario: Scenario) -> None:
        self._scenario = scenario

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        sock = writer.get_extra_info("socket")
        if sock is None:
            logger.warning("server: not a TCP connection, closing normally")
            return

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, _LINGER_RESET)
        except OSError as exc:
            logger.warning("server: error setting SO_LINGER: %s, closing normally", exc)
            return

        writer.transport.abort()
        logger.info("server: abruptly closed connection with RST to %s", peer)


class MultiResponseBehavior:
    """One response, then hold the connection open before closing it."""

    name: ClassVar[str] = "multi_response"

    def __init__(self, scenario: Scenario) -> None:
        self._close_delay = scenario.multi_response_close_delay

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        await asyncio.sleep(REQUEST_SETTLE_DELAY)
        if not await _write_ok(writer, peer):
            return

        await asyncio.sleep(self._close_delay)
        logger.info("server: closing connection to %s", peer)


RAW_BEHAVIORS: dict[ServerMode, type[ResetBehavior] | type[MultiResponseBehavior]] = {
    ServerMode.ABRUPT_RESET: ResetBehavior,
    ServerMode.MULTI_RESPONSE_THEN_CLOSE: MultiResponseBehavior,
}


def behavior_for(scenario: Scenario) -> ConnectionBehavior:
    """Select the raw-socket behavior for the scenario's server mode.

    Raises:
        UnknownServerModeError: If the mode has no raw-socket behavior.
    """
    try:
        behavior_cls = RAW_BEHAVIORS[scenario.server_mode]
    except KeyError:
        raise UnknownServerModeError(
            f"no raw connection behavior for server mode {scenario.server_mode!r}"
        ) from None
    return behavior_cls(scenario)


class RawConnectionEngine:
    """asyncio TCP server applying one raw behavior per accepted connection.

    Every accepted connection increments the engine's counter. With
    ``succeed_first_connection`` the odd-numbered connections are served with
    a clean response instead of the mode's behavior.

    Args:
        scenario: Active scenario, its mode must be a raw-socket mode.
        host: Address to bind to.
        port: Port to listen on, 0 picks an ephemeral port.
        counter: Connection-attempt counter, a fresh one when omitted.
    """

    def __init__(
        self,
        scenario: Scenario,
        host: str = "127.0.0.1",
        port: int = 8080,
        counter: ConnectionCounter | None = None,
    ) -> None:
        self._scenario = scenario
        self._host = host
        self._port = port
        self._counter = counter or ConnectionCounter()
        self._behavior = behavior_for(scenario)
        self._first_success = CleanResponseBehavior(scenario)
        self._server: asyncio.Server | None = None
        self._bound_port: int | None = None
        self._connections: set[asyncio.Task[None]] = set()

    @property
    def mode(self) -> ServerMode:
        """Server mode implemented by the engine."""
        return self._scenario.server_mode

    @property
    def bound_port(self) -> int | None:
        """Port actually bound, None while stopped."""
        return self._bound_port

    @property
    def counter(self) -> ConnectionCounter:
        """The engine's connection-attempt counter."""
        return self._counter

    def _select(self, attempt: int) -> ConnectionBehavior:
        if self._scenario.succeed_first_connection and attempt % 2 == 1:
            return self._first_success
        return self._behavior

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)

        writer.transport.pause_reading()
        attempt = self._counter.increment()
        behavior = self._select(attempt)
        logger.info(
            "server: connection #%d from %s -> %s",
            attempt,
            writer.get_extra_info("peername"),
            behavior.name,
        )
        try:
            await behavior.serve(reader, writer)
        finally:
            if task is not None:
                self._connections.discard(task)
            if not writer.is_closing():
                writer.close()

    async def start(self) -> None:
        """Start accepting raw TCP connections.

        Raises:
            RuntimeError: If the server is already running.
            ListenerBindError: If the address cannot be bound.
        """
        if self._server is not None:
            raise RuntimeError("Server is already running")

        try:
            self._server = await asyncio.start_server(
                self._handle_connection, self._host, self._port
            )
        except OSError as exc:
            raise ListenerBindError(f"{self._host}:{self._port}", exc) from exc

        self._bound_port = self._server.sockets[0].getsockname()[1]
        logger.info(
            "Starting %s server on %s:%s",
            self._scenario.server_mode.value,
            self._host,
            self._bound_port,
        )

    async def stop(self) -> None:
        """Stop the listener and drop open connections without draining."""
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

    async def __aenter__(self) -> RawConnectionEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
