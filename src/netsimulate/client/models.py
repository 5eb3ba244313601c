"""Data structures shared by the request driver.

This module defines the pool configuration derived from a scenario and the
per-request outcomes the driver reports back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from netsimulate.catalog import Scenario

# Idle connections kept per host when a scenario does not say otherwise.
DEFAULT_MAX_IDLE_PER_HOST = 2


@dataclass(frozen=True, slots=True)
class ConnectionConfig:
    """Connection pool settings for the driver's HTTP client.

    Attributes:
        max_connections: Cap on connections per host, None for unlimited.
        timeout: Total time allowed for one request in seconds (default: 10.0).
        max_keepalive_connections: Idle connections kept for reuse (default: 2).
        keepalive_expiry: Seconds an idle connection may wait for reuse (default: 90.0).
        http2: Negotiate HTTP/2 through ALPN (default: False).
    """

    max_connections: int | None = None
    timeout: float = 10.0
    max_keepalive_connections: int = DEFAULT_MAX_IDLE_PER_HOST
    keepalive_expiry: float = 90.0
    http2: bool = False

    @classmethod
    def from_scenario(cls, scenario: Scenario) -> Self:
        """Derive pool settings from a scenario's client parameters.

        A ``max_conns_per_host`` of 0 means no cap.
        """
        return cls(
            max_connections=scenario.max_conns_per_host or None,
            timeout=scenario.client_request_timeout,
            keepalive_expiry=scenario.client_idle_timeout,
            http2=scenario.use_http2,
        )


@dataclass(frozen=True, slots=True)
class RequestOutcome:
    """Result of one numbered request.

    Attributes:
        number: 1-based request number, also sent as the ``req`` query value.
        method: HTTP method used.
        status_code: Response status (0 if no response was received).
        body: Response body text, empty on failure.
        error: Error text if the request failed, None otherwise.
        attempts: Transmissions made, 2 when the request was replayed.
        started_at: ``time.monotonic()`` when the request was issued.
        finished_at: ``time.monotonic()`` when it completed or failed.
    """

    number: int
    method: str
    status_code: int
    body: str
    error: str | None
    attempts: int
    started_at: float
    finished_at: float

    @property
    def ok(self) -> bool:
        """True when a response arrived."""
        return self.error is None

    @property
    def elapsed(self) -> float:
        return self.finished_at - self.started_at


@dataclass(frozen=True, slots=True)
class DriveResult:
    """Aggregate result of one driver run.

    Attributes:
        outcomes: One outcome per request, ordered by request number.
        total_time: Wall time for the whole run in seconds.
    """

    outcomes: list[RequestOutcome]
    total_time: float

    @property
    def success_count(self) -> int:
        """Number of requests that received a response."""
        return sum(1 for outcome in self.outcomes if outcome.ok)

    @property
    def error_count(self) -> int:
        """Number of requests that ended in an error."""
        return sum(1 for outcome in self.outcomes if not outcome.ok)
