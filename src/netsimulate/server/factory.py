"""Engine selection by server mode."""

from __future__ import annotations

import ssl
from collections.abc import Callable

from netsimulate.catalog import Scenario, ServerMode
from netsimulate.config import Settings
from netsimulate.exceptions import TLSNotSupportedError, UnknownServerModeError
from netsimulate.server.base import BehaviorEngine
from netsimulate.server.counter import ConnectionCounter
from netsimulate.server.h2_server import H2BehaviorEngine
from netsimulate.server.http_server import HTTPBehaviorEngine
from netsimulate.server.raw_server import RawConnectionEngine
from netsimulate.server.tls import build_server_ssl_context

EngineBuilder = Callable[
    [Scenario, str, int, ssl.SSLContext | None, ConnectionCounter | None],
    BehaviorEngine,
]


def _normal_http(
    scenario: Scenario,
    host: str,
    port: int,
    ssl_context: ssl.SSLContext | None,
    counter: ConnectionCounter | None,
) -> BehaviorEngine:
    if scenario.use_http2:
        return H2BehaviorEngine(scenario, host, port, ssl_context)
    return HTTPBehaviorEngine(scenario, host, port, ssl_context)


def _raw(
    scenario: Scenario,
    host: str,
    port: int,
    ssl_context: ssl.SSLContext | None,
    counter: ConnectionCounter | None,
) -> BehaviorEngine:
    return RawConnectionEngine(scenario, host, port, counter)


ENGINES: dict[ServerMode, EngineBuilder] = {
    ServerMode.NORMAL_HTTP: _normal_http,
    ServerMode.ABRUPT_RESET: _raw,
    ServerMode.MULTI_RESPONSE_THEN_CLOSE: _raw,
}


def create_engine(
    scenario: Scenario,
    settings: Settings,
    *,
    port: int | None = None,
    counter: ConnectionCounter | None = None,
) -> BehaviorEngine:
    """Build the behavior engine for a scenario.

    Args:
        scenario: Scenario to serve.
        settings: Bind address and TLS credential locations.
        port: Override the port from settings (0 for ephemeral).
        counter: Connection counter injected into raw-socket engines.

    Returns:
        A stopped engine ready for ``start()``.

    Raises:
        TLSNotSupportedError: If TLS is requested for a raw-socket mode.
        ConfigurationError: If TLS credentials cannot be loaded.
        UnknownServerModeError: If no engine exists for the mode.
    """
    try:
        builder = ENGINES[scenario.server_mode]
    except KeyError:
        raise UnknownServerModeError(
            f"unknown server mode {scenario.server_mode!r}"
        ) from None

    ssl_context: ssl.SSLContext | None = None
    if scenario.use_tls:
        if not scenario.supports_tls:
            raise TLSNotSupportedError(scenario.id)
        ssl_context = build_server_ssl_context(
            settings.cert_file, settings.key_file, http2=scenario.use_http2
        )

    bind_port = settings.port_for(scenario) if port is None else port
    return builder(scenario, settings.host, bind_port, ssl_context, counter)
