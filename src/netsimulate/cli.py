"""Command line entry point.

Usage:
    netsimulate -sim ID [-tls] [-keylog FILE] [-method METHOD]

Options:
    -sim ID         Simulation scenario ID (e.g. '01')
    -tls            Run the scenario over TLS (not supported by all scenarios)
    -keylog FILE    Append TLS session keys to FILE for capture decryption
    -method METHOD  Override the request method (GET, POST, DELETE, HEAD)
    -h              Show the help message and the scenario catalog
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Iterable, Sequence
from dataclasses import replace

from netsimulate.catalog import CATALOG, Scenario
from netsimulate.config import ALLOWED_METHODS, Settings, resolve_scenario
from netsimulate.exceptions import ConfigurationError, ListenerBindError, UnknownScenarioError
from netsimulate.orchestrator import Simulation

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _install_uvloop() -> None:
    # uvloop does not support Windows; fall back to the default loop there
    if sys.platform != "win32":
        try:
            import uvloop

            uvloop.install()
        except ImportError:
            # Install with: pip install netsimulate[performance]
            pass


def format_help(scenarios: Iterable[Scenario] | None = None) -> str:
    """Usage text followed by the scenario catalog."""
    lines = [
        "Usage: netsimulate [OPTIONS]",
        "",
        "Options:",
        "  -sim        Simulation scenario ID (e.g., '01')",
        "  -tls        Run the selected simulation over TLS (not supported by all scenarios)",
        "  -keylog     File to append TLS session keys to (NSS key log format)",
        f"  -method     Override the HTTP request method ({', '.join(ALLOWED_METHODS)})",
        "  -h          Show this help message and exit",
        "",
        "Available Scenarios:",
    ]
    for scenario in scenarios if scenarios is not None else CATALOG.all():
        capability = "(can HTTPS)" if scenario.supports_tls else "(no HTTPS)"
        lines.append(f"  {scenario.id}: {scenario.description} {capability}")
    lines += ["", "Example:", "  netsimulate -sim 01", ""]
    return "\n".join(lines)


def _max_conns_info(limit: int) -> str:
    return "(unlimited)" if limit == 0 else ""


def format_configuration(scenario: Scenario, settings: Settings) -> str:
    """Configuration banner logged before a run."""
    rows = [
        ("ID", scenario.id),
        ("Description", scenario.description),
        ("Server Mode", scenario.server_mode.value),
        ("Server Address", settings.address_for(scenario)),
        ("Use HTTP2", scenario.use_http2),
        ("Use TLS", scenario.use_tls),
        ("Server Idle Timeout", f"{scenario.server_idle_timeout:.1f} sec"),
        ("Server Success On First", scenario.succeed_first_connection),
        ("Server Sleep Before Response", f"{scenario.response_delay:.2f} sec"),
        ("Server Sleep On Second", scenario.sleep_on_second),
        ("Server Sleep On Second Dur", f"{scenario.second_request_delay:.1f} sec"),
        ("Server Close Delay", f"{scenario.multi_response_close_delay:.1f} sec"),
        ("Client Request Type", scenario.request_method),
        ("Client Idle Timeout", f"{scenario.client_idle_timeout:.1f} sec"),
        (
            "Client MaxConnsPerHost",
            f"{scenario.max_conns_per_host} {_max_conns_info(scenario.max_conns_per_host)}".rstrip(),
        ),
        ("Client Wait Before Next Req", f"{scenario.inter_request_delay:.1f} sec"),
        ("Client Timeout", f"{scenario.client_request_timeout:.1f} sec"),
        ("Request Count", scenario.request_count),
        ("Requests In Parallel", scenario.parallel_requests),
    ]
    width = max(len(label) for label, _ in rows) + 2
    body = "\n".join(f"  {label + ':':<{width}}{value}" for label, value in rows)
    return f"Configuration:\n{body}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="netsimulate", add_help=False)
    parser.add_argument("-sim", dest="sim", default=None)
    parser.add_argument("-tls", dest="tls", action="store_true")
    parser.add_argument("-keylog", dest="keylog", default=None)
    parser.add_argument("-method", dest="method", default=None)
    parser.add_argument("-h", "--help", dest="help", action="store_true")
    return parser


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)


async def _run(scenario: Scenario, settings: Settings) -> None:
    simulation = Simulation(scenario, settings)
    loop = asyncio.get_running_loop()
    handled: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, simulation.interrupt)
        except NotImplementedError:
            continue
        handled.append(sig)

    try:
        await simulation.run()
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the simulator.

    Returns:
        Process exit code: 0 on a completed or interrupted run, 1 on a
        configuration error or when the listener cannot be started.
    """
    args = build_parser().parse_args(argv)
    if args.help:
        print(format_help())
        return 0

    settings = Settings.from_env()
    if args.keylog:
        settings = replace(settings, keylog_path=args.keylog)
    configure_logging(settings)

    if not args.sim:
        print(format_help())
        logger.error("Error: simulation ID is required (-sim)")
        return 1

    try:
        scenario = resolve_scenario(args.sim, force_tls=args.tls, method=args.method)
    except UnknownScenarioError as exc:
        logger.error("%s", exc)
        print(format_help())
        return 1
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    logger.info("%s", format_configuration(scenario, settings))
    if settings.keylog_path and not scenario.use_tls:
        logger.warning("Key log file %r is ignored: TLS is not active", settings.keylog_path)

    _install_uvloop()
    try:
        asyncio.run(_run(scenario, settings))
    except (ConfigurationError, ListenerBindError) as exc:
        logger.error("%s", exc)
        return 1
    return 0
