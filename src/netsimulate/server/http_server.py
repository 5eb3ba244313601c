"""NORMAL_HTTP behavior engine built on aiohttp.

The server closes keep-alive connections that stay idle longer than the
scenario's ``server_idle_timeout``, which is what the idle-pool scenarios
observe on the wire.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any

from aiohttp import web

from netsimulate.catalog import Scenario, ServerMode
from netsimulate.exceptions import ListenerBindError
from netsimulate.server.base import respond

logger = logging.getLogger(__name__)

# In-flight requests are abandoned on stop rather than drained.
_SHUTDOWN_TIMEOUT = 0.1


class HTTPBehaviorEngine:
    """aiohttp server applying the scenario's response timing.

    Args:
        scenario: Active scenario, its mode must be NORMAL_HTTP.
        host: Address to bind to (default: 127.0.0.1).
        port: Port to listen on, 0 picks an ephemeral port (default: 8080).
        ssl_context: Serve HTTPS when given.

    Example:
        ```python
        engine = HTTPBehaviorEngine(scenario, port=0)
        await engine.start()
        print(f"listening on {engine.base_url}")
        await engine.stop()
        ```
    """

    def __init__(
        self,
        scenario: Scenario,
        host: str = "127.0.0.1",
        port: int = 8080,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        if scenario.server_mode is not ServerMode.NORMAL_HTTP:
            raise ValueError(f"HTTPBehaviorEngine cannot serve {scenario.server_mode.value}")

        self._scenario = scenario
        self._host = host
        self._port = port
        self._ssl_context = ssl_context
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None
        self._bound_port: int | None = None

    @property
    def mode(self) -> ServerMode:
        """Server mode implemented by the engine."""
        return ServerMode.NORMAL_HTTP

    @property
    def bound_port(self) -> int | None:
        """Port actually bound, None while stopped."""
        return self._bound_port

    @property
    def base_url(self) -> str:
        """Base URL of the running server."""
        scheme = "https" if self._ssl_context is not None else "http"
        return f"{scheme}://{self._host}:{self._bound_port or self._port}"

    async def handle(self, request: web.Request) -> web.Response:
        """Handle any request on ``/``."""
        result = await respond(
            self._scenario,
            request.method,
            request.query.get("req", ""),
            request.read,
        )
        return web.Response(status=result.status, text=result.body)

    def _create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/", self.handle)
        return app

    async def start(self) -> None:
        """Start the HTTP server.

        Raises:
            RuntimeError: If the server is already running.
            ListenerBindError: If the address cannot be bound.
        """
        if self._runner is not None:
            raise RuntimeError("Server is already running")

        runner_kwargs: dict[str, Any] = {
            "keepalive_timeout": self._scenario.server_idle_timeout,
            "shutdown_timeout": _SHUTDOWN_TIMEOUT,
        }
        self._runner = web.AppRunner(self._create_app(), **runner_kwargs)
        await self._runner.setup()

        self._site = web.TCPSite(
            self._runner,
            self._host,
            self._port,
            ssl_context=self._ssl_context,
        )
        try:
            await self._site.start()
        except OSError as exc:
            await self._runner.cleanup()
            self._runner = None
            self._site = None
            raise ListenerBindError(f"{self._host}:{self._port}", exc) from exc

        self._bound_port = self._port
        if self._runner.addresses:
            address = self._runner.addresses[0]
            if isinstance(address, tuple) and len(address) >= 2:
                self._bound_port = address[1]

        logger.info("Starting server on %s:%s", self._host, self._bound_port)

    async def stop(self) -> None:
        """Stop the HTTP server. Stopping a stopped server is a no-op."""
        if self._runner is None:
            return

        await self._runner.cleanup()
        self._runner = None
        self._site = None
        self._bound_port = None
        logger.info("server: stopped")

    async def __aenter__(self) -> HTTPBehaviorEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
