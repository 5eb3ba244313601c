"""Tests for the package's public exports."""

from __future__ import annotations

import netsimulate
from netsimulate import client, server


class TestPackageExports:
    """Tests for names exported by the netsimulate packages."""

    def test_version(self) -> None:
        """The package exposes a version string."""
        assert netsimulate.__version__ == "0.1.0"

    def test_top_level_all_resolves(self) -> None:
        """Every name in __all__ is importable."""
        for name in netsimulate.__all__:
            assert getattr(netsimulate, name) is not None

    def test_subpackage_all_resolves(self) -> None:
        """Client and server subpackages export what they list."""
        for module in (client, server):
            for name in module.__all__:
                assert getattr(module, name) is not None

    def test_core_names(self) -> None:
        """The main entry points are reachable from the top level."""
        assert netsimulate.Simulation is not None
        assert netsimulate.RequestDriver is not None
        assert netsimulate.lookup("01")[1] is True
