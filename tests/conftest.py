"""Pytest configuration and fixtures for netsimulate tests."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from netsimulate.catalog import Scenario, ServerMode
from netsimulate.client import RecordingEventSink
from netsimulate.config import Settings

CERT_DIR = Path(__file__).parent / "fixtures" / "certs"


@pytest.fixture()
def cert_file() -> str:
    """Self-signed certificate for 127.0.0.1."""
    return str(CERT_DIR / "server.crt")


@pytest.fixture()
def key_file() -> str:
    """Private key matching the test certificate."""
    return str(CERT_DIR / "server.key")


@pytest.fixture()
def settings(cert_file: str, key_file: str) -> Settings:
    """Loopback settings with ephemeral ports, bundled certs and no settle delay."""
    return Settings(
        host="127.0.0.1",
        port=0,
        tls_port=0,
        cert_file=cert_file,
        key_file=key_file,
        settle_delay=0.0,
    )


@pytest.fixture()
def fast_http_scenario() -> Scenario:
    """NORMAL_HTTP scenario with short timings for quick runs."""
    return Scenario(
        id="t1",
        description="fast normal http",
        server_mode=ServerMode.NORMAL_HTTP,
        server_idle_timeout=5.0,
        inter_request_delay=0.05,
        client_request_timeout=5.0,
    )


@pytest.fixture()
def make_scenario(fast_http_scenario: Scenario):
    """Factory deriving test scenarios from the fast NORMAL_HTTP one."""

    def _make(**changes) -> Scenario:
        return replace(fast_http_scenario, **changes)

    return _make


@pytest.fixture()
def recorder() -> RecordingEventSink:
    """In-memory lifecycle event sink."""
    return RecordingEventSink()
