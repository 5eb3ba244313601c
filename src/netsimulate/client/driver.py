"""Request driver: issues a scenario's numbered requests with httpx.AsyncClient.

The driver builds one client per run, configured from the scenario's pool
settings, and routes its connections through a ``TracingTransport`` so that
every request's connection lifecycle is reported to the event sink.

Features:
- Sequential mode with an inter-request delay, or parallel mode on a TaskGroup
- Per-request total timeout
- Single replay of idempotent requests that fail on a reused connection
- Request errors are reported per request and never abort the run
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import time

import httpx

from netsimulate.catalog import Scenario
from netsimulate.client.events import EventSink, LoggingEventSink
from netsimulate.client.models import ConnectionConfig, DriveResult, RequestOutcome
from netsimulate.client.tracing import AttemptTrace, ConnectionTracer, TracingTransport

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})

# Transport failures a stale keep-alive connection produces; timeouts excluded.
_REPLAYABLE_ERRORS = (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)


def build_client_ssl_context(keylog_path: str | None = None) -> ssl.SSLContext:
    """Client TLS context that accepts the simulator's self-signed certificate.

    Args:
        keylog_path: File to append NSS key-log lines to, for decrypting
            captures. Failure to open it is logged and ignored.
    """
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    if keylog_path:
        try:
            context.keylog_filename = keylog_path
        except OSError as exc:
            logger.error("client: failed to open key log file %r: %s", keylog_path, exc)
        else:
            logger.info("client: logging TLS key exchange to %r", keylog_path)
    return context


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


class RequestDriver:
    """Drives a scenario's client side against a running engine.

    Args:
        scenario: Scenario whose request parameters and pool settings apply.
        base_url: Engine URL, e.g. ``http://127.0.0.1:8080``.
        sink: Receiver of lifecycle events (default: a LoggingEventSink).
        keylog_path: NSS key-log file, used only when the scenario runs TLS.
        config: Pool settings (default: derived from the scenario).

    Example:
        ```python
        driver = RequestDriver(scenario, "http://127.0.0.1:8080")
        result = await driver.run()
        print(result.success_count)
        ```
    """

    def __init__(
        self,
        scenario: Scenario,
        base_url: str,
        *,
        sink: EventSink | None = None,
        keylog_path: str | None = None,
        config: ConnectionConfig | None = None,
    ) -> None:
        self._scenario = scenario
        self._base_url = base_url.rstrip("/")
        self._keylog_path = keylog_path
        self._config = config or ConnectionConfig.from_scenario(scenario)
        self._tracer = ConnectionTracer(sink or LoggingEventSink())

        url = httpx.URL(self._base_url)
        self._target = f"{url.host}:{url.port or (443 if url.scheme == 'https' else 80)}"

    @property
    def config(self) -> ConnectionConfig:
        """Pool settings in use."""
        return self._config

    def build_client(self) -> httpx.AsyncClient:
        """Create the pooled client for one run."""
        limits = httpx.Limits(
            max_connections=self._config.max_connections,
            max_keepalive_connections=self._config.max_keepalive_connections,
            keepalive_expiry=self._config.keepalive_expiry,
        )
        ssl_context = (
            build_client_ssl_context(self._keylog_path) if self._scenario.use_tls else None
        )
        transport = TracingTransport(
            self._tracer,
            ssl_context=ssl_context,
            http2=self._config.http2,
            limits=limits,
        )
        return httpx.AsyncClient(
            transport=transport, timeout=httpx.Timeout(self._config.timeout)
        )

    async def run(self) -> DriveResult:
        """Issue all requests of the scenario.

        Returns:
            DriveResult with one outcome per request, ordered by number.
        """
        numbers = range(1, self._scenario.request_count + 1)
        start_time = time.perf_counter()

        async with self.build_client() as client:
            if self._scenario.parallel_requests:
                async with asyncio.TaskGroup() as tg:
                    tasks = [tg.create_task(self._send(client, n)) for n in numbers]
                    logger.info("client: waiting for all %d requests to finish", len(tasks))
                outcomes = [task.result() for task in tasks]
            else:
                outcomes = []
                for n in numbers:
                    outcomes.append(await self._send(client, n))
                    if n < self._scenario.request_count:
                        await self._pause()

        total_time = time.perf_counter() - start_time
        logger.info(
            "client: finished %d requests in %.2fs (%d ok, %d failed)",
            len(outcomes),
            total_time,
            sum(1 for o in outcomes if o.ok),
            sum(1 for o in outcomes if not o.ok),
        )
        return DriveResult(outcomes=outcomes, total_time=total_time)

    async def _pause(self) -> None:
        delay = self._scenario.inter_request_delay
        if delay <= 0:
            return
        logger.info("client: waiting %.1f sec before the next request", delay)
        await asyncio.sleep(delay)

    def _should_replay(self, trace: AttemptTrace, error: BaseException, attempts: int) -> bool:
        return (
            attempts == 1
            and trace.reused
            and self._scenario.request_method in IDEMPOTENT_METHODS
            and isinstance(error, _REPLAYABLE_ERRORS)
        )

    async def _send(self, client: httpx.AsyncClient, number: int) -> RequestOutcome:
        """Send request ``number``, replaying it once if its reused connection died."""
        method = self._scenario.request_method
        url = f"{self._base_url}/?method={method}&req={number}"
        logger.info("client: sending %d. %s request...", number, method)

        started_at = time.monotonic()
        attempts = 0
        while True:
            attempts += 1
            response: httpx.Response | None = None
            error: Exception | None = None
            with self._tracer.attempt(number, self._target) as trace:
                try:
                    response = await asyncio.wait_for(
                        client.request(method, url), timeout=self._config.timeout
                    )
                except TimeoutError:
                    error = TimeoutError(
                        f"request timed out after {self._config.timeout:.1f}s"
                    )
                except httpx.HTTPError as exc:
                    error = exc
                self._tracer.release(trace, response=response, error=error)

            if error is not None:
                if self._should_replay(trace, error, attempts):
                    logger.info(
                        "client: %d. %s request failed on a reused connection (%s), "
                        "replaying on a new connection",
                        number,
                        method,
                        _describe(error),
                    )
                    continue

                logger.warning(
                    "client: error sending %d. %s request: %s", number, method, _describe(error)
                )
                return RequestOutcome(
                    number=number,
                    method=method,
                    status_code=0,
                    body="",
                    error=_describe(error),
                    attempts=attempts,
                    started_at=started_at,
                    finished_at=time.monotonic(),
                )

            logger.info(
                "client: response from %d. request: status: %d %s, body: %s",
                number,
                response.status_code,
                response.reason_phrase,
                response.text,
            )
            return RequestOutcome(
                number=number,
                method=method,
                status_code=response.status_code,
                body=response.text,
                error=None,
                attempts=attempts,
                started_at=started_at,
                finished_at=time.monotonic(),
            )
