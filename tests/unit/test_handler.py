"""Unit tests for the NORMAL_HTTP request handler."""

from __future__ import annotations

import time

import pytest

from netsimulate.catalog import Scenario
from netsimulate.server import HandlerResponse, respond


def _body(data: bytes = b""):
    async def read() -> bytes:
        return data

    return read


class TestRespond:
    """Tests for the shared respond() handler."""

    @pytest.fixture()
    def scenario(self) -> Scenario:
        return Scenario(id="h", description="handler")

    @pytest.mark.asyncio
    async def test_get_echoes_query_number(self, scenario: Scenario) -> None:
        """GET answers 200 with the request number."""
        result = await respond(scenario, "GET", "7", _body())
        assert result == HandlerResponse(200, "GET request handled with query number: 7")

    @pytest.mark.asyncio
    async def test_post_echoes_body(self, scenario: Scenario) -> None:
        """POST answers 200 echoing the received body."""
        result = await respond(scenario, "POST", "1", _body(b"payload"))
        assert result.status == 200
        assert result.body == "POST request handled, Data received: payload\n"

    @pytest.mark.asyncio
    async def test_post_body_read_failure(self, scenario: Scenario) -> None:
        """A failing body read yields 500."""

        async def broken() -> bytes:
            raise ConnectionResetError("peer gone")

        result = await respond(scenario, "POST", "1", broken)
        assert result == HandlerResponse(500, "Error reading request body\n")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["DELETE", "HEAD", "PUT"])
    async def test_other_methods_rejected(self, scenario: Scenario, method: str) -> None:
        """Anything but GET and POST answers 405."""
        result = await respond(scenario, method, "1", _body())
        assert result == HandlerResponse(405, "Unsupported request method\n")

    @pytest.mark.asyncio
    async def test_response_delay_applied(self) -> None:
        """The response delay is slept before answering."""
        scenario = Scenario(id="h", description="d", response_delay=0.2)
        start = time.monotonic()
        await respond(scenario, "GET", "1", _body())
        assert time.monotonic() - start >= 0.19

    @pytest.mark.asyncio
    async def test_second_request_delay_only_on_second(self) -> None:
        """The second-request delay applies to req == "2" only."""
        scenario = Scenario(
            id="h", description="d", sleep_on_second=True, second_request_delay=0.3
        )

        start = time.monotonic()
        await respond(scenario, "GET", "1", _body())
        first = time.monotonic() - start

        start = time.monotonic()
        await respond(scenario, "GET", "2", _body())
        second = time.monotonic() - start

        assert first < 0.2
        assert second >= 0.29
