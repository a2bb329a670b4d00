#!/usr/bin/env python3
"""Tests for RPC endpoint selection."""

import asyncio

import pytest

from reward_watcher.exceptions import AllEndpointsUnreachable, ConnectivityError
from reward_watcher.utils.connection_selector import select_connection


class FakeProvider:
    def __init__(self, fail_connect: bool = False) -> None:
        self.fail_connect = fail_connect
        self.connected = False
        self.disconnected = False

    async def connect(self) -> None:
        if self.fail_connect:
            raise ConnectionError("connection refused")
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnected = True


class FakeEth:
    def __init__(self, block: int = 100, error: Exception | None = None, hang: bool = False) -> None:
        self.block = block
        self.error = error
        self.hang = hang

    @property
    def block_number(self):
        return self._probe()

    async def _probe(self) -> int:
        if self.hang:
            await asyncio.sleep(10)
        if self.error:
            raise self.error
        return self.block


class FakeWeb3:
    def __init__(self, provider: FakeProvider, eth: FakeEth) -> None:
        self.provider = provider
        self.eth = eth


class RecordingFactory:
    """Builds fake web3 instances per URL and records every attempt."""

    def __init__(self, behaviours: dict[str, FakeWeb3]) -> None:
        self.behaviours = behaviours
        self.attempted: list[str] = []

    def __call__(self, url: str) -> FakeWeb3:
        self.attempted.append(url)
        return self.behaviours[url]


def good(block: int = 100) -> FakeWeb3:
    return FakeWeb3(FakeProvider(), FakeEth(block=block))


class TestSelectConnection:
    """Tests for select_connection."""

    @pytest.mark.asyncio
    async def test_first_working_candidate_wins(self):
        """Test that the first good endpoint is returned and later ones are never tried."""
        factory = RecordingFactory({
            "bad-url": FakeWeb3(FakeProvider(fail_connect=True), FakeEth()),
            "good-url-1": good(1),
            "good-url-2": good(2),
        })

        w3, url = await select_connection(["bad-url", "good-url-1", "good-url-2"], web3_factory=factory)

        assert url == "good-url-1"
        assert w3 is factory.behaviours["good-url-1"]
        assert factory.attempted == ["bad-url", "good-url-1"]

    @pytest.mark.asyncio
    async def test_probe_failure_closes_connection(self):
        """Test that an endpoint that opens but fails the probe is closed and skipped."""
        failing = FakeWeb3(FakeProvider(), FakeEth(error=ValueError("method not found")))
        factory = RecordingFactory({"wss://a": failing, "wss://b": good()})

        _, url = await select_connection(["wss://a", "wss://b"], web3_factory=factory)

        assert url == "wss://b"
        assert failing.provider.disconnected is True

    @pytest.mark.asyncio
    async def test_all_candidates_fail(self):
        """Test that total failure raises AllEndpointsUnreachable listing every candidate."""
        factory = RecordingFactory({
            "wss://a": FakeWeb3(FakeProvider(fail_connect=True), FakeEth()),
            "wss://b": FakeWeb3(FakeProvider(), FakeEth(error=OSError("reset"))),
        })

        with pytest.raises(AllEndpointsUnreachable) as exc_info:
            await select_connection(["wss://a", "wss://b"], web3_factory=factory)

        assert isinstance(exc_info.value, ConnectivityError)
        assert exc_info.value.candidates == ["wss://a", "wss://b"]
        assert len(exc_info.value.errors) == 2
        assert factory.attempted == ["wss://a", "wss://b"]

    @pytest.mark.asyncio
    async def test_empty_candidates_rejected(self):
        """Test that an empty candidate list is a caller error."""
        with pytest.raises(ValueError):
            await select_connection([])

    @pytest.mark.asyncio
    async def test_http_urls_use_websocket_scheme(self):
        """Test that http(s) candidates are dialled as ws(s)."""
        factory = RecordingFactory({"wss://rpc.example.org/ws": good()})

        _, url = await select_connection(["https://rpc.example.org/ws"], web3_factory=factory)

        assert url == "wss://rpc.example.org/ws"
        assert factory.attempted == ["wss://rpc.example.org/ws"]

    @pytest.mark.asyncio
    async def test_hanging_probe_times_out(self):
        """Test that a stalled endpoint is abandoned once the budget runs out."""
        hanging = FakeWeb3(FakeProvider(), FakeEth(hang=True))
        factory = RecordingFactory({"wss://slow": hanging})

        with pytest.raises(AllEndpointsUnreachable) as exc_info:
            await asyncio.wait_for(
                select_connection(["wss://slow"], timeout=0.05, web3_factory=factory),
                timeout=2
            )

        assert "timed out" in exc_info.value.errors[0]
        assert hanging.provider.disconnected is True

    @pytest.mark.asyncio
    async def test_exhausted_budget_skips_candidates(self):
        """Test that no candidate is dialled once the shared budget is spent."""
        factory = RecordingFactory({"wss://a": good()})

        with pytest.raises(AllEndpointsUnreachable):
            await select_connection(["wss://a"], timeout=0, web3_factory=factory)

        assert factory.attempted == []

    @pytest.mark.asyncio
    async def test_cancellation_closes_pending_connection(self):
        """Test that cancelling selection mid-probe still closes the endpoint being tried."""
        hanging = FakeWeb3(FakeProvider(), FakeEth(hang=True))
        factory = RecordingFactory({"wss://slow": hanging})

        task = asyncio.create_task(select_connection(["wss://slow"], timeout=5, web3_factory=factory))
        while not hanging.provider.connected:
            await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert hanging.provider.disconnected is True
