"""Simulation orchestrator: runs one scenario's engine and driver together.

The run moves through ``STARTING -> RUNNING -> {COMPLETED | INTERRUPTED} ->
STOPPED``. The engine is stopped on every path out of RUNNING; an interrupt
cancels in-flight requests without draining them.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from contextlib import suppress
from datetime import UTC, datetime
from enum import Enum

from netsimulate.catalog import Scenario
from netsimulate.client import DriveResult, EventSink, LoggingEventSink, RequestDriver
from netsimulate.config import Settings
from netsimulate.server import BehaviorEngine, create_engine

logger = logging.getLogger(__name__)


class SimulationState(Enum):
    """Simulation run state."""

    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"
    STOPPED = "stopped"


_TRANSITIONS: dict[SimulationState, frozenset[SimulationState]] = {
    SimulationState.STARTING: frozenset({SimulationState.RUNNING, SimulationState.STOPPED}),
    SimulationState.RUNNING: frozenset(
        {SimulationState.COMPLETED, SimulationState.INTERRUPTED, SimulationState.STOPPED}
    ),
    SimulationState.COMPLETED: frozenset({SimulationState.STOPPED}),
    SimulationState.INTERRUPTED: frozenset({SimulationState.STOPPED}),
    SimulationState.STOPPED: frozenset(),
}

EngineFactory = Callable[[Scenario], BehaviorEngine]


class Simulation:
    """One scenario run: engine bring-up, settle delay, driver, teardown.

    Args:
        scenario: Resolved scenario to run.
        settings: Process settings (default: read from the environment).
        sink: Lifecycle event sink handed to the driver.
        engine_factory: Builds the engine for the scenario (default:
            ``create_engine`` with the given settings).
        port: Override the listening port, 0 for an ephemeral one.

    Example:
        ```python
        simulation = Simulation(scenario, Settings.from_env())
        loop.add_signal_handler(signal.SIGINT, simulation.interrupt)
        await simulation.run()
        ```
    """

    def __init__(
        self,
        scenario: Scenario,
        settings: Settings | None = None,
        *,
        sink: EventSink | None = None,
        engine_factory: EngineFactory | None = None,
        port: int | None = None,
    ) -> None:
        self._scenario = scenario
        self._settings = settings or Settings.from_env()
        self._sink = sink or LoggingEventSink(structured=self._settings.structured_logs)
        self._engine_factory = engine_factory or (
            lambda s: create_engine(s, self._settings, port=port)
        )
        self._state = SimulationState.STARTING
        self._interrupted = asyncio.Event()
        self._result: DriveResult | None = None

    @property
    def state(self) -> SimulationState:
        """Current run state."""
        return self._state

    @property
    def result(self) -> DriveResult | None:
        """Driver summary, None unless the run completed."""
        return self._result

    def interrupt(self) -> None:
        """Request early termination. Safe to call from a signal handler."""
        if not self._interrupted.is_set():
            logger.info("Interrupt received, shutting down")
        self._interrupted.set()

    def _transition(self, to_state: SimulationState, trigger: str) -> None:
        from_state = self._state
        if to_state not in _TRANSITIONS[from_state]:
            raise RuntimeError(
                f"invalid simulation transition {from_state.value} -> {to_state.value}"
            )
        self._state = to_state
        if self._settings.structured_logs:
            logger.info(
                json.dumps(
                    {
                        "event": "simulation_state_change",
                        "scenario": self._scenario.id,
                        "from_state": from_state.value,
                        "to_state": to_state.value,
                        "trigger": trigger,
                        "timestamp": datetime.now(UTC).isoformat(),
                    }
                )
            )
        else:
            logger.debug("simulation %s -> %s (%s)", from_state.value, to_state.value, trigger)

    async def _drive(self, engine: BehaviorEngine) -> DriveResult:
        delay = self._settings.settle_delay
        if delay > 0:
            await asyncio.sleep(delay)

        base_url = f"{self._scenario.scheme}://{self._settings.host}:{engine.bound_port}"
        logger.info("Starting client requests against %s", base_url)
        driver = RequestDriver(
            self._scenario,
            base_url,
            sink=self._sink,
            keylog_path=self._settings.keylog_path,
        )
        return await driver.run()

    async def run(self) -> DriveResult | None:
        """Run the scenario to a terminal state.

        Returns:
            The driver summary when the run completed, None when interrupted.

        Raises:
            RuntimeError: If this simulation already ran.
            ListenerBindError: If the engine cannot bind its address.
            ConfigurationError: If TLS credentials cannot be loaded.
        """
        if self._state is not SimulationState.STARTING:
            raise RuntimeError("Simulation has already been run")

        try:
            engine = self._engine_factory(self._scenario)
            await engine.start()
        except BaseException:
            self._transition(SimulationState.STOPPED, "engine start failed")
            raise

        drive: asyncio.Task[DriveResult] | None = None
        waiter: asyncio.Task[bool] | None = None
        try:
            self._transition(SimulationState.RUNNING, "engine started")
            drive = asyncio.create_task(self._drive(engine))
            waiter = asyncio.create_task(self._interrupted.wait())
            done, _ = await asyncio.wait({drive, waiter}, return_when=asyncio.FIRST_COMPLETED)

            if drive in done:
                self._result = drive.result()
                self._transition(SimulationState.COMPLETED, "driver finished")
                logger.info("Simulation finished")
            else:
                drive.cancel()
                with suppress(asyncio.CancelledError):
                    await drive
                self._transition(SimulationState.INTERRUPTED, "interrupt")
        finally:
            for task in (drive, waiter):
                if task is not None and not task.done():
                    task.cancel()
            await engine.stop()
            self._transition(SimulationState.STOPPED, "engine stopped")

        return self._result
