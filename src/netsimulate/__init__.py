"""Network Connection Behavior Simulator.

Reproduces TCP/HTTP connection-lifecycle behaviors (idle-timeout expiry,
abrupt RST teardown, multi-response close, slow responses, parallel
connection fan-out) on demand, so they can be observed in a packet capture
alongside the client's own connection-reuse trace.
"""

from netsimulate.catalog import CATALOG, Scenario, ServerMode, lookup
from netsimulate.client import (
    DriveResult,
    EventKind,
    LifecycleEvent,
    RequestDriver,
    RequestOutcome,
)
from netsimulate.config import Settings, resolve_scenario
from netsimulate.exceptions import (
    ConfigurationError,
    ListenerBindError,
    SimulationError,
    UnknownScenarioError,
)
from netsimulate.orchestrator import Simulation, SimulationState

__version__ = "0.1.0"

__all__ = [
    "CATALOG",
    "ConfigurationError",
    "DriveResult",
    "EventKind",
    "LifecycleEvent",
    "ListenerBindError",
    "RequestDriver",
    "RequestOutcome",
    "Scenario",
    "ServerMode",
    "Settings",
    "Simulation",
    "SimulationError",
    "SimulationState",
    "UnknownScenarioError",
    "lookup",
    "resolve_scenario",
]
