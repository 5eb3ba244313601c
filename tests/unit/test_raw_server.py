"""Unit tests for the raw TCP behavior engine.

Tests cover:
- Behavior selection by server mode
- ABRUPT_RESET tearing connections down with RST
- Odd/even alternation with succeed_first_connection
- Normal close when SO_LINGER cannot be set
- MULTI_RESPONSE_THEN_CLOSE timing, with and without first-success
"""

from __future__ import annotations

import asyncio
import logging
import time

import pytest

from netsimulate.catalog import Scenario, ServerMode
from netsimulate.exceptions import ListenerBindError, UnknownServerModeError
from netsimulate.server import (
    RAW_OK_RESPONSE,
    BehaviorEngine,
    ConnectionCounter,
    MultiResponseBehavior,
    RawConnectionEngine,
    ResetBehavior,
    behavior_for,
    raw_server,
)


def _raw_scenario(mode: ServerMode, **changes) -> Scenario:
    return Scenario(id="raw", description="raw", server_mode=mode, **changes)


async def _read_all(port: int, timeout: float = 5.0) -> bytes:
    """Connect without sending anything and read until EOF."""
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        return await asyncio.wait_for(reader.read(), timeout=timeout)
    finally:
        writer.close()


async def _expect_reset(port: int, timeout: float = 5.0) -> None:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        with pytest.raises(ConnectionResetError):
            await asyncio.wait_for(reader.read(), timeout=timeout)
    finally:
        writer.close()


class TestBehaviorSelection:
    """Tests for behavior_for dispatch."""

    def test_reset_mode(self) -> None:
        """ABRUPT_RESET selects the reset behavior."""
        behavior = behavior_for(_raw_scenario(ServerMode.ABRUPT_RESET))
        assert isinstance(behavior, ResetBehavior)

    def test_multi_response_mode(self) -> None:
        """MULTI_RESPONSE_THEN_CLOSE selects the multi-response behavior."""
        behavior = behavior_for(_raw_scenario(ServerMode.MULTI_RESPONSE_THEN_CLOSE))
        assert isinstance(behavior, MultiResponseBehavior)

    def test_normal_http_fails_loudly(self) -> None:
        """NORMAL_HTTP has no raw behavior: dispatch raises."""
        with pytest.raises(UnknownServerModeError):
            behavior_for(_raw_scenario(ServerMode.NORMAL_HTTP))

    def test_unknown_server_mode_is_runtime_error(self) -> None:
        """Dispatch failures are programming errors."""
        assert issubclass(UnknownServerModeError, RuntimeError)

    def test_engine_satisfies_protocol(self) -> None:
        """RawConnectionEngine is a BehaviorEngine."""
        engine = RawConnectionEngine(_raw_scenario(ServerMode.ABRUPT_RESET), port=0)
        assert isinstance(engine, BehaviorEngine)
        assert engine.mode is ServerMode.ABRUPT_RESET


class TestAbruptReset:
    """Tests for ABRUPT_RESET connections."""

    @pytest.mark.asyncio
    async def test_every_connection_reset(self) -> None:
        """Without first-success every connection ends in RST."""
        scenario = _raw_scenario(ServerMode.ABRUPT_RESET)
        async with RawConnectionEngine(scenario, port=0) as engine:
            assert engine.bound_port
            for _ in range(3):
                await _expect_reset(engine.bound_port)
            assert engine.counter.value == 3

    @pytest.mark.asyncio
    async def test_first_success_alternates(self) -> None:
        """Connections #1 and #3 get 200, #2 and #4 are reset."""
        scenario = _raw_scenario(ServerMode.ABRUPT_RESET, succeed_first_connection=True)
        async with RawConnectionEngine(scenario, port=0) as engine:
            port = engine.bound_port
            assert port is not None

            assert await _read_all(port) == RAW_OK_RESPONSE
            await _expect_reset(port)
            assert await _read_all(port) == RAW_OK_RESPONSE
            await _expect_reset(port)

    @pytest.mark.asyncio
    async def test_injected_counter(self) -> None:
        """The engine counts with the injected counter, so parity carries over."""
        counter = ConnectionCounter(start=1)
        scenario = _raw_scenario(ServerMode.ABRUPT_RESET, succeed_first_connection=True)
        async with RawConnectionEngine(scenario, port=0, counter=counter) as engine:
            assert engine.counter is counter
            assert engine.bound_port is not None
            await _expect_reset(engine.bound_port)
        assert counter.value == 2

    @pytest.mark.asyncio
    async def test_linger_failure_closes_normally(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        """If SO_LINGER cannot be set, the connection gets a FIN and serving continues."""
        monkeypatch.setattr(raw_server, "_LINGER_RESET", b"x")
        scenario = _raw_scenario(ServerMode.ABRUPT_RESET)
        with caplog.at_level(logging.WARNING, logger="netsimulate.server.raw_server"):
            async with RawConnectionEngine(scenario, port=0) as engine:
                assert engine.bound_port is not None
                assert await _read_all(engine.bound_port) == b""
                assert await _read_all(engine.bound_port) == b""
                assert engine.counter.value == 2

        assert "error setting SO_LINGER" in caplog.text
        assert "closing normally" in caplog.text


class TestMultiResponse:
    """Tests for MULTI_RESPONSE_THEN_CLOSE connections."""

    @pytest.mark.asyncio
    async def test_one_response_then_delayed_close(self) -> None:
        """Exactly one response, closed no earlier than the close delay after it."""
        scenario = _raw_scenario(
            ServerMode.MULTI_RESPONSE_THEN_CLOSE, multi_response_close_delay=0.5
        )
        async with RawConnectionEngine(scenario, port=0) as engine:
            assert engine.bound_port is not None
            reader, writer = await asyncio.open_connection("127.0.0.1", engine.bound_port)
            try:
                head = await asyncio.wait_for(
                    reader.readexactly(len(RAW_OK_RESPONSE)), timeout=5.0
                )
                written_at = time.monotonic()
                rest = await asyncio.wait_for(reader.read(), timeout=5.0)
                closed_at = time.monotonic()
            finally:
                writer.close()

        assert head == RAW_OK_RESPONSE
        assert rest == b""
        assert closed_at - written_at >= 0.45

    @pytest.mark.asyncio
    async def test_first_success_closes_odd_connections_promptly(self) -> None:
        """Odd connections get a clean response, even ones are held for the close delay."""
        scenario = _raw_scenario(
            ServerMode.MULTI_RESPONSE_THEN_CLOSE,
            multi_response_close_delay=0.6,
            succeed_first_connection=True,
        )
        async with RawConnectionEngine(scenario, port=0) as engine:
            port = engine.bound_port
            assert port is not None

            started = time.monotonic()
            first = await _read_all(port)
            first_elapsed = time.monotonic() - started

            started = time.monotonic()
            second = await _read_all(port)
            second_elapsed = time.monotonic() - started

        assert first == RAW_OK_RESPONSE
        assert second == RAW_OK_RESPONSE
        assert first_elapsed < 0.5
        assert second_elapsed >= 0.65


class TestEngineLifecycle:
    """Tests for start/stop handling."""

    @pytest.mark.asyncio
    async def test_double_start_rejected(self) -> None:
        """Starting a running engine raises."""
        engine = RawConnectionEngine(_raw_scenario(ServerMode.ABRUPT_RESET), port=0)
        await engine.start()
        try:
            with pytest.raises(RuntimeError, match="already running"):
                await engine.start()
        finally:
            await engine.stop()
        assert engine.bound_port is None

    @pytest.mark.asyncio
    async def test_stop_when_stopped_is_noop(self) -> None:
        """Stopping a stopped engine does nothing."""
        engine = RawConnectionEngine(_raw_scenario(ServerMode.ABRUPT_RESET), port=0)
        await engine.stop()

    @pytest.mark.asyncio
    async def test_stop_drops_open_connections(self) -> None:
        """Stop does not wait for the multi-response close delay."""
        scenario = _raw_scenario(
            ServerMode.MULTI_RESPONSE_THEN_CLOSE, multi_response_close_delay=30.0
        )
        engine = RawConnectionEngine(scenario, port=0)
        await engine.start()
        assert engine.bound_port is not None
        reader, writer = await asyncio.open_connection("127.0.0.1", engine.bound_port)
        await asyncio.wait_for(reader.readexactly(len(RAW_OK_RESPONSE)), timeout=5.0)

        start = time.monotonic()
        await asyncio.wait_for(engine.stop(), timeout=5.0)
        assert time.monotonic() - start < 5.0
        writer.close()

    @pytest.mark.asyncio
    async def test_bind_failure(self) -> None:
        """A taken port raises ListenerBindError."""
        scenario = _raw_scenario(ServerMode.ABRUPT_RESET)
        async with RawConnectionEngine(scenario, port=0) as first:
            second = RawConnectionEngine(scenario, port=first.bound_port or 0)
            with pytest.raises(ListenerBindError, match="Error starting server on"):
                await second.start()
