"""Static catalog of the available simulation scenarios."""

from __future__ import annotations

from collections.abc import Iterable

from netsimulate.catalog.models import Scenario, ServerMode


class ScenarioCatalog:
    """Ordered, read-only collection of scenarios indexed by ID.

    Example:
        >>> scenario, found = CATALOG.lookup("01")
        >>> found
        True
    """

    def __init__(self, scenarios: Iterable[Scenario]) -> None:
        self._scenarios: tuple[Scenario, ...] = tuple(scenarios)
        self._by_id: dict[str, Scenario] = {}
        for scenario in self._scenarios:
            if scenario.id in self._by_id:
                raise ValueError(f"duplicate scenario id: {scenario.id}")
            self._by_id[scenario.id] = scenario

    def lookup(self, scenario_id: str) -> tuple[Scenario | None, bool]:
        """Find a scenario by ID.

        Args:
            scenario_id: Catalog identifier such as "01".

        Returns:
            Tuple of (scenario, found). The scenario is None when not found.
        """
        scenario = self._by_id.get(scenario_id)
        return scenario, scenario is not None

    def all(self) -> tuple[Scenario, ...]:
        """Return every scenario in catalog order."""
        return self._scenarios

    def __len__(self) -> int:
        return len(self._scenarios)

    def __contains__(self, scenario_id: object) -> bool:
        return scenario_id in self._by_id


CATALOG = ScenarioCatalog(
    [
        Scenario(
            id="01",
            description="Server HTTP 200 OK response - connection reused from idle pool",
            server_mode=ServerMode.NORMAL_HTTP,
            server_idle_timeout=5.0,
            client_idle_timeout=90.0,
            inter_request_delay=1.0,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="02",
            description=(
                "Server HTTP 200 OK response - connection not reused from idle pool"
                " - over server idle timeout"
            ),
            server_mode=ServerMode.NORMAL_HTTP,
            server_idle_timeout=1.0,
            client_idle_timeout=90.0,
            inter_request_delay=1.1,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="03",
            description=(
                "Server HTTP 200 OK response - connection not reused from idle pool"
                " - over client idle timeout"
            ),
            server_mode=ServerMode.NORMAL_HTTP,
            server_idle_timeout=5.0,
            client_idle_timeout=1.0,
            inter_request_delay=2.0,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="04",
            description=(
                "Server HTTP 200 OK response - slow response - client timeout"
                " - connection not put to idle pool"
            ),
            server_mode=ServerMode.NORMAL_HTTP,
            server_idle_timeout=5.0,
            response_delay=1.1,
            client_idle_timeout=90.0,
            inter_request_delay=1.0,
            client_request_timeout=1.0,
        ),
        Scenario(
            id="05",
            description=(
                "Server HTTP 200 OK response - slow response on second request"
                " - connection not put to idle pool"
            ),
            server_mode=ServerMode.NORMAL_HTTP,
            server_idle_timeout=5.0,
            sleep_on_second=True,
            second_request_delay=1.1,
            client_idle_timeout=90.0,
            inter_request_delay=1.0,
            client_request_timeout=1.0,
        ),
        Scenario(
            id="06",
            description=(
                "Server HTTP OK response for first request, but connection closed"
                " under the second one - replayed on a new connection for GET"
            ),
            server_mode=ServerMode.MULTI_RESPONSE_THEN_CLOSE,
            multi_response_close_delay=2.1,
            request_method="GET",
            client_idle_timeout=90.0,
            inter_request_delay=2.0,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="07",
            description=(
                "Server HTTP OK response for first request, but connection closed"
                " under the second one - no replay for POST"
            ),
            server_mode=ServerMode.MULTI_RESPONSE_THEN_CLOSE,
            multi_response_close_delay=2.1,
            request_method="POST",
            client_idle_timeout=90.0,
            inter_request_delay=2.0,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="08",
            description=(
                "Server HTTP OK response for first request, then closes the connection"
                " before the second one - client detects the closed connection and"
                " opens a new one"
            ),
            server_mode=ServerMode.MULTI_RESPONSE_THEN_CLOSE,
            multi_response_close_delay=1.0,
            client_idle_timeout=90.0,
            inter_request_delay=2.0,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="09",
            description="Multiple requests in parallel - multiple TCP connections",
            server_mode=ServerMode.NORMAL_HTTP,
            server_idle_timeout=5.0,
            response_delay=0.01,
            client_idle_timeout=90.0,
            inter_request_delay=0.0,
            parallel_requests=True,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="10",
            description=(
                "Multiple requests in parallel with client MaxConnsPerHost=1"
                " - one TCP connection is used"
            ),
            server_mode=ServerMode.NORMAL_HTTP,
            server_idle_timeout=5.0,
            response_delay=0.01,
            client_idle_timeout=90.0,
            max_conns_per_host=1,
            inter_request_delay=0.0,
            parallel_requests=True,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="11",
            description="Server resets every connection with RST - no HTTP response at all",
            server_mode=ServerMode.ABRUPT_RESET,
            client_idle_timeout=90.0,
            inter_request_delay=1.0,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="12",
            description=(
                "Server HTTP 200 OK on odd connections, RST on even ones"
                " - first request succeeds, next one fails"
            ),
            server_mode=ServerMode.ABRUPT_RESET,
            succeed_first_connection=True,
            client_idle_timeout=90.0,
            inter_request_delay=1.0,
            client_request_timeout=10.0,
        ),
        Scenario(
            id="20",
            description="HTTP2, Server HTTP 200 OK response - connection reused from idle pool",
            server_mode=ServerMode.NORMAL_HTTP,
            use_tls=True,
            use_http2=True,
            server_idle_timeout=5.0,
            client_idle_timeout=90.0,
            inter_request_delay=1.0,
            client_request_timeout=10.0,
        ),
    ]
)


def lookup(scenario_id: str) -> tuple[Scenario | None, bool]:
    """Find a scenario in the built-in catalog.

    Args:
        scenario_id: Catalog identifier such as "01".

    Returns:
        Tuple of (scenario, found).
    """
    return CATALOG.lookup(scenario_id)


def all_scenarios() -> tuple[Scenario, ...]:
    """Return every built-in scenario in catalog order."""
    return CATALOG.all()


def supports_tls(scenario: Scenario) -> bool:
    """Whether the scenario can be served over TLS."""
    return scenario.supports_tls
