"""Scenario catalog: named simulation configurations."""

from netsimulate.catalog.models import Scenario, ServerMode
from netsimulate.catalog.registry import (
    CATALOG,
    ScenarioCatalog,
    all_scenarios,
    lookup,
    supports_tls,
)

__all__ = [
    "CATALOG",
    "Scenario",
    "ScenarioCatalog",
    "ServerMode",
    "all_scenarios",
    "lookup",
    "supports_tls",
]
