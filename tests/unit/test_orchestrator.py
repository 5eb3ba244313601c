"""Unit tests for the Simulation orchestrator."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import replace

import pytest

from netsimulate.catalog import Scenario
from netsimulate.client import RecordingEventSink
from netsimulate.config import Settings
from netsimulate.exceptions import ConfigurationError, ListenerBindError
from netsimulate.orchestrator import Simulation, SimulationState
from netsimulate.server import HTTPBehaviorEngine


class TestSimulationRun:
    """Tests for a full simulation run."""

    @pytest.mark.asyncio
    async def test_completes_and_stops(
        self, fast_http_scenario: Scenario, settings: Settings, recorder: RecordingEventSink
    ) -> None:
        """A normal run ends COMPLETED then STOPPED with a driver summary."""
        simulation = Simulation(fast_http_scenario, settings, sink=recorder, port=0)
        assert simulation.state is SimulationState.STARTING

        result = await simulation.run()

        assert simulation.state is SimulationState.STOPPED
        assert result is not None
        assert result is simulation.result
        assert result.success_count == 3
        assert recorder.events

    @pytest.mark.asyncio
    async def test_settle_delay_precedes_first_request(
        self, fast_http_scenario: Scenario, settings: Settings, recorder: RecordingEventSink
    ) -> None:
        """The first acquisition waits for the settle delay."""
        scenario = replace(fast_http_scenario, request_count=1)
        simulation = Simulation(
            scenario, replace(settings, settle_delay=0.3), sink=recorder, port=0
        )
        start = time.monotonic()
        await simulation.run()
        first_acquire = recorder.events[0].timestamp
        assert first_acquire - start >= 0.29

    @pytest.mark.asyncio
    async def test_cannot_run_twice(
        self, fast_http_scenario: Scenario, settings: Settings, recorder: RecordingEventSink
    ) -> None:
        """A simulation runs once."""
        simulation = Simulation(
            replace(fast_http_scenario, request_count=1), settings, sink=recorder, port=0
        )
        await simulation.run()
        with pytest.raises(RuntimeError, match="already been run"):
            await simulation.run()

    @pytest.mark.asyncio
    async def test_interrupt_cancels_inflight_requests(
        self, make_scenario, settings: Settings, recorder: RecordingEventSink
    ) -> None:
        """An interrupt cancels the driver without draining and stops the engine."""
        scenario = make_scenario(response_delay=5.0, client_request_timeout=10.0)
        engines: list[HTTPBehaviorEngine] = []

        def factory(s: Scenario) -> HTTPBehaviorEngine:
            engine = HTTPBehaviorEngine(s, port=0)
            engines.append(engine)
            return engine

        simulation = Simulation(scenario, settings, sink=recorder, engine_factory=factory)
        run = asyncio.create_task(simulation.run())
        await asyncio.sleep(0.3)
        assert simulation.state is SimulationState.RUNNING

        simulation.interrupt()
        result = await asyncio.wait_for(run, timeout=5.0)

        assert result is None
        assert simulation.state is SimulationState.STOPPED
        assert engines[0].bound_port is None

    @pytest.mark.asyncio
    async def test_bind_failure_propagates(
        self, fast_http_scenario: Scenario, settings: Settings, recorder: RecordingEventSink
    ) -> None:
        """A taken port aborts the run with ListenerBindError."""
        async with HTTPBehaviorEngine(fast_http_scenario, port=0) as blocker:
            simulation = Simulation(
                fast_http_scenario, settings, sink=recorder, port=blocker.bound_port
            )
            with pytest.raises(ListenerBindError):
                await simulation.run()
        assert simulation.state is SimulationState.STOPPED
        assert not recorder.events

    @pytest.mark.asyncio
    async def test_missing_tls_credentials(
        self, settings: Settings, recorder: RecordingEventSink, tmp_path
    ) -> None:
        """Unreadable TLS credentials abort before any request."""
        scenario = Scenario(id="t", description="tls", use_tls=True, request_count=1)
        broken = replace(settings, cert_file=str(tmp_path / "x.crt"))
        simulation = Simulation(scenario, broken, sink=recorder, port=0)
        with pytest.raises(ConfigurationError):
            await simulation.run()
        assert simulation.state is SimulationState.STOPPED

    @pytest.mark.asyncio
    async def test_structured_state_logs(
        self,
        fast_http_scenario: Scenario,
        settings: Settings,
        recorder: RecordingEventSink,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """With structured logging, state changes are logged as JSON."""
        scenario = replace(fast_http_scenario, request_count=1)
        simulation = Simulation(
            scenario, replace(settings, structured_logs=True), sink=recorder, port=0
        )
        with caplog.at_level(logging.INFO, logger="netsimulate.orchestrator"):
            await simulation.run()

        changes = [
            json.loads(r.getMessage())
            for r in caplog.records
            if r.name == "netsimulate.orchestrator" and r.getMessage().startswith("{")
        ]
        assert [c["to_state"] for c in changes] == ["running", "completed", "stopped"]
