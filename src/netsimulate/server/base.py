"""Base Protocol for connection behavior engines.

This module defines the BehaviorEngine protocol that every server-mode
implementation follows, plus the request handling shared by the HTTP/1.1 and
HTTP/2 engines.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from netsimulate.catalog import Scenario, ServerMode

logger = logging.getLogger(__name__)


@runtime_checkable
class BehaviorEngine(Protocol):
    """Protocol defining the interface for server-side behavior engines.

    Every engine listens on one address and applies the behavior of exactly
    one server mode to each inbound connection.

    Example:
        >>> from netsimulate.server import RawConnectionEngine
        >>> from netsimulate.catalog import lookup
        >>> scenario, _ = lookup("11")
        >>> isinstance(RawConnectionEngine(scenario, port=0), BehaviorEngine)
        True
    """

    @property
    def mode(self) -> ServerMode:
        """Server mode implemented by the engine."""
        ...

    @property
    def bound_port(self) -> int | None:
        """Port actually bound, None while the engine is stopped."""
        ...

    async def start(self) -> None:
        """Bind the listening socket and start accepting connections.

        Raises:
            ListenerBindError: If the address cannot be bound.
        """
        ...

    async def stop(self) -> None:
        """Stop accepting and drop in-flight connections without draining."""
        ...


@dataclass(frozen=True, slots=True)
class HandlerResponse:
    """Status and text body produced by the request handler."""

    status: int
    body: str


async def respond(
    scenario: Scenario,
    method: str,
    query_num: str,
    read_body: Callable[[], Awaitable[bytes]],
) -> HandlerResponse:
    """Build the response for one request in NORMAL_HTTP mode.

    The second-request delay and the general response delay are applied
    before the method is inspected.

    Args:
        scenario: Active scenario.
        method: Request method.
        query_num: Value of the ``req`` query parameter ("" when absent).
        read_body: Coroutine factory returning the request body.

    Returns:
        The status code and body to send.
    """
    logger.info("server: handling request %s num %s", method, query_num)

    if scenario.sleep_on_second and query_num == "2":
        logger.info("server: sleeping %.1f sec", scenario.second_request_delay)
        await asyncio.sleep(scenario.second_request_delay)

    if scenario.response_delay:
        logger.info("server: sleeping %.1f sec", scenario.response_delay)
        await asyncio.sleep(scenario.response_delay)

    if method == "GET":
        return HandlerResponse(200, f"GET request handled with query number: {query_num}")

    if method == "POST":
        try:
            body = await read_body()
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("server: error reading request body: %s", exc)
            return HandlerResponse(500, "Error reading request body\n")
        text = body.decode("utf-8", errors="replace")
        return HandlerResponse(200, f"POST request handled, Data received: {text}\n")

    return HandlerResponse(405, "Unsupported request method\n")
