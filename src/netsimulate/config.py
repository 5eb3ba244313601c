"""Runtime settings and scenario resolution.

Settings are read from environment variables with sensible defaults, the same
way the rest of the package picks up tunables. Scenario overrides coming from
the command line are applied with ``dataclasses.replace`` so catalog entries
stay immutable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

from netsimulate.catalog import Scenario, lookup
from netsimulate.exceptions import (
    InvalidMethodError,
    TLSNotSupportedError,
    UnknownScenarioError,
)

ALLOWED_METHODS: tuple[str, ...] = ("GET", "POST", "DELETE", "HEAD")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class Settings:
    """Process-level settings that are not part of a scenario.

    Attributes:
        host: Address the behavior engine binds to (default: 127.0.0.1).
        port: Port for plain HTTP / raw TCP scenarios (default: 8080).
        tls_port: Port for TLS scenarios (default: 8443).
        cert_file: Server certificate in PEM format (default: server.crt).
        key_file: Server private key in PEM format (default: server.key).
        settle_delay: Grace period between engine start and the first request.
        keylog_path: Append TLS session secrets here when TLS is active.
        log_level: Root log level name (default: INFO).
        structured_logs: Emit lifecycle events as JSON lines.
    """

    host: str = "127.0.0.1"
    port: int = 8080
    tls_port: int = 8443
    cert_file: str = "server.crt"
    key_file: str = "server.key"
    settle_delay: float = 1.0
    keylog_path: str | None = None
    log_level: str = "INFO"
    structured_logs: bool = False

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from ``NETSIM_*`` environment variables."""
        return cls(
            host=os.getenv("NETSIM_HOST", "127.0.0.1"),
            port=int(os.getenv("NETSIM_PORT", "8080")),
            tls_port=int(os.getenv("NETSIM_TLS_PORT", "8443")),
            cert_file=os.getenv("NETSIM_CERT_FILE", "server.crt"),
            key_file=os.getenv("NETSIM_KEY_FILE", "server.key"),
            settle_delay=float(os.getenv("NETSIM_SETTLE_DELAY", "1.0")),
            keylog_path=os.getenv("NETSIM_KEYLOG_FILE") or None,
            log_level=os.getenv("NETSIM_LOG_LEVEL", "INFO").upper(),
            structured_logs=_env_bool("NETSIM_STRUCTURED_LOGS", "false"),
        )

    def port_for(self, scenario: Scenario) -> int:
        """Listening port for the given scenario."""
        return self.tls_port if scenario.use_tls else self.port

    def address_for(self, scenario: Scenario) -> str:
        """``host:port`` the engine listens on for the given scenario."""
        return f"{self.host}:{self.port_for(scenario)}"

    def base_url_for(self, scenario: Scenario) -> str:
        """Base URL the driver targets for the given scenario."""
        return f"{scenario.scheme}://{self.address_for(scenario)}"


def resolve_scenario(
    scenario_id: str,
    *,
    force_tls: bool = False,
    method: str | None = None,
) -> Scenario:
    """Look up a scenario and apply command-line overrides.

    Args:
        scenario_id: Catalog identifier.
        force_tls: Serve and request over TLS even if the entry does not.
        method: Override the scenario's request method.

    Returns:
        The scenario to run.

    Raises:
        UnknownScenarioError: If the ID is not in the catalog.
        InvalidMethodError: If the method override is not allowed.
        TLSNotSupportedError: If TLS is forced on a raw-socket scenario.
    """
    scenario, found = lookup(scenario_id)
    if not found or scenario is None:
        raise UnknownScenarioError(scenario_id)

    if method is not None:
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise InvalidMethodError(method, ALLOWED_METHODS)
        scenario = replace(scenario, request_method=method)

    if force_tls:
        if not scenario.supports_tls:
            raise TLSNotSupportedError(scenario_id)
        scenario = replace(scenario, use_tls=True)

    return scenario
