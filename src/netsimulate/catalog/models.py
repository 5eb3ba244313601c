"""Domain models for the scenario catalog.

This module defines the immutable scenario record shared by the behavior
engine, the request driver and the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ServerMode(str, Enum):
    """Server-side behavior selected by a scenario.

    Attributes:
        NORMAL_HTTP: Standard HTTP server with an idle keep-alive timeout.
        ABRUPT_RESET: Raw TCP server that tears connections down with RST.
        MULTI_RESPONSE_THEN_CLOSE: Raw TCP server that sends one response,
            keeps the connection open for a while, then closes it with FIN.
    """

    NORMAL_HTTP = "normal_http"
    ABRUPT_RESET = "abrupt_reset"
    MULTI_RESPONSE_THEN_CLOSE = "multi_response_then_close"


@dataclass(frozen=True, slots=True)
class Scenario:
    """A named, immutable bundle of timing and behavior parameters.

    Durations are expressed in seconds.

    Attributes:
        id: Short catalog identifier (e.g. "01").
        description: Human readable summary shown in the help listing.
        server_mode: Which server-side behavior runs.
        server_idle_timeout: Idle keep-alive timeout of the HTTP server.
        response_delay: Sleep before every response.
        sleep_on_second: Sleep ``second_request_delay`` when ``req == "2"``.
        second_request_delay: Extra sleep applied to the second request.
        succeed_first_connection: Odd raw connections get a clean 200 response.
        multi_response_close_delay: Time a multi-response connection stays
            open after its single response.
        request_method: HTTP method used by the driver.
        request_count: Number of requests issued by the driver.
        inter_request_delay: Pause between sequential requests.
        parallel_requests: Dispatch all requests concurrently.
        client_idle_timeout: How long the client keeps idle connections pooled.
        client_request_timeout: Total timeout for a single request.
        max_conns_per_host: Client connection cap, 0 means unlimited.
        use_tls: Serve and request over HTTPS.
        use_http2: Negotiate HTTP/2 (implies TLS).
    """

    id: str
    description: str
    server_mode: ServerMode = ServerMode.NORMAL_HTTP
    server_idle_timeout: float = 5.0
    response_delay: float = 0.0
    sleep_on_second: bool = False
    second_request_delay: float = 0.0
    succeed_first_connection: bool = False
    multi_response_close_delay: float = 0.0
    request_method: str = "GET"
    request_count: int = 3
    inter_request_delay: float = 1.0
    parallel_requests: bool = False
    client_idle_timeout: float = 90.0
    client_request_timeout: float = 10.0
    max_conns_per_host: int = 0
    use_tls: bool = False
    use_http2: bool = False

    def __post_init__(self) -> None:
        if self.request_count < 1:
            raise ValueError("request_count must be at least 1")
        if self.max_conns_per_host < 0:
            raise ValueError("max_conns_per_host must be non-negative")
        if self.use_http2 and not self.use_tls:
            # HTTP/2 is only negotiated through ALPN
            object.__setattr__(self, "use_tls", True)

    @property
    def supports_tls(self) -> bool:
        """Whether the scenario's server mode can be wrapped in TLS."""
        return self.server_mode is ServerMode.NORMAL_HTTP

    @property
    def scheme(self) -> str:
        """URL scheme the driver uses for this scenario."""
        return "https" if self.use_tls else "http"
