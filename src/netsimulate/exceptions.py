"""Exception hierarchy for the simulator."""

from __future__ import annotations


class SimulationError(Exception):
    """Base class for all simulator errors."""

    pass


class ConfigurationError(SimulationError):
    """Raised for invalid run configuration, before any network activity."""

    pass


class UnknownScenarioError(ConfigurationError):
    """Raised when a scenario ID is not present in the catalog."""

    def __init__(self, scenario_id: str) -> None:
        super().__init__(f"Invalid simulation ID: {scenario_id}")
        self.scenario_id = scenario_id


class InvalidMethodError(ConfigurationError):
    """Raised when the requested HTTP method is not allowed."""

    def __init__(self, method: str, allowed: tuple[str, ...]) -> None:
        super().__init__(
            f"invalid method: {method}. Allowed methods are {', '.join(allowed)}"
        )
        self.method = method


class TLSNotSupportedError(ConfigurationError):
    """Raised when TLS is requested for a scenario that cannot serve it."""

    def __init__(self, scenario_id: str) -> None:
        super().__init__(f"TLS is not supported by the selected scenario: {scenario_id}")
        self.scenario_id = scenario_id


class ListenerBindError(SimulationError):
    """Raised when the behavior engine cannot bind its listening address."""

    def __init__(self, address: str, cause: BaseException) -> None:
        super().__init__(f"Error starting server on {address}: {cause}")
        self.address = address


class UnknownServerModeError(SimulationError, RuntimeError):
    """Raised when dispatch meets a server mode with no behavior attached.

    This signals a programming error and is never recovered from.
    """

    pass
