#!/usr/bin/env python3
"""Unit tests for the EventSource subscription wrapper."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from reward_watcher.exceptions import SubscriptionError
from reward_watcher.models import FilterSpec, InputKind
from reward_watcher.utils.event_listener_utility import EventSource, parse_event_topic_as_int

MODULE = "reward_watcher.utils.event_listener_utility"
BONDING_MANAGER = "0x35Bcf3c30594191d53231E4FF333E8A770453e40"


@pytest.fixture
def w3():
    mock = MagicMock()
    mock.subscription_manager.subscribe = AsyncMock(return_value="0x1")
    mock.subscription_manager.handle_subscriptions = AsyncMock(return_value=None)
    mock.subscription_manager.unsubscribe_all = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def inbox():
    return asyncio.Queue()


@pytest.fixture
def spec():
    return FilterSpec(address=BONDING_MANAGER.lower(), topics=("0x" + "11" * 32, "0x" + "22" * 32))


class TestSubscribe:
    """Tests for EventSource.subscribe."""

    @pytest.mark.asyncio
    async def test_subscription_parameters(self, w3, inbox, spec):
        """Test that the LogsSubscription gets the checksummed address and topics."""
        source = EventSource(w3, inbox)
        with patch(f"{MODULE}.LogsSubscription") as mock_subscription:
            await source.subscribe("Reward", InputKind.REWARD, spec)

        kwargs = mock_subscription.call_args.kwargs
        assert kwargs["address"] == BONDING_MANAGER
        assert kwargs["topics"] == list(spec.topics)
        assert kwargs["label"] == "Reward-subscription"
        w3.subscription_manager.subscribe.assert_awaited_once_with([mock_subscription.return_value])
        assert source.labels == ["Reward"]

    @pytest.mark.asyncio
    async def test_handler_enqueues_parsed_event(self, w3, inbox, spec):
        """Test that received logs reach the inbox as typed monitor inputs."""
        source = EventSource(w3, inbox)
        with patch(f"{MODULE}.LogsSubscription") as mock_subscription:
            await source.subscribe("NewRound", InputKind.NEW_ROUND, spec)
        handler = mock_subscription.call_args.kwargs["handler"]

        await handler(SimpleNamespace(result={
            'address': BONDING_MANAGER,
            'blockNumber': '0x1f4',
            'transactionHash': '0x' + 'aa' * 32,
            'topics': ['0x' + '11' * 32, '0x' + '00' * 31 + '2a'],
            'logIndex': '0x3',
        }))

        item = inbox.get_nowait()
        assert item.kind is InputKind.NEW_ROUND
        assert item.source == "NewRound"
        assert item.event.block_number == 500
        assert item.event.log_index == 3
        assert parse_event_topic_as_int(item.event.topics[1]) == 42
        assert source.logs_received == 1

    @pytest.mark.asyncio
    async def test_malformed_log_is_dropped(self, w3, inbox, spec):
        """Test that an unparseable log does not reach the monitor."""
        source = EventSource(w3, inbox)
        with patch(f"{MODULE}.LogsSubscription") as mock_subscription:
            await source.subscribe("Reward", InputKind.REWARD, spec)
        handler = mock_subscription.call_args.kwargs["handler"]

        await handler(SimpleNamespace(result={'blockNumber': 'not-a-number', 'topics': []}))

        assert inbox.empty()

    @pytest.mark.asyncio
    async def test_subscribe_failure_raises(self, w3, inbox, spec):
        """Test that a rejected subscription surfaces as SubscriptionError."""
        w3.subscription_manager.subscribe.side_effect = ValueError("filter not supported")
        source = EventSource(w3, inbox)

        with patch(f"{MODULE}.LogsSubscription"):
            with pytest.raises(SubscriptionError, match="Reward subscription error"):
                await source.subscribe("Reward", InputKind.REWARD, spec)

        assert source.labels == []


class TestPump:
    """Tests for EventSource.pump."""

    @pytest.mark.asyncio
    async def test_stream_error_becomes_failure_input(self, w3, inbox):
        """Test that a dropped connection yields exactly one FAILURE input."""
        w3.subscription_manager.handle_subscriptions.side_effect = ConnectionError("socket closed")
        source = EventSource(w3, inbox)
        source.labels = ["Reward", "NewRound"]

        await source.pump()

        item = inbox.get_nowait()
        assert item.kind is InputKind.FAILURE
        assert item.source == "Reward/NewRound"
        assert isinstance(item.error, SubscriptionError)
        assert "socket closed" in str(item.error)
        assert inbox.empty()

    @pytest.mark.asyncio
    async def test_stream_end_becomes_failure_input(self, w3, inbox):
        """Test that a stream that stops without error is still treated as a failure."""
        source = EventSource(w3, inbox)
        source.labels = ["NewRound"]

        await source.pump()

        item = inbox.get_nowait()
        assert item.kind is InputKind.FAILURE
        assert "subscription stream ended" in str(item.error)

    @pytest.mark.asyncio
    async def test_pump_cancellation_propagates(self, w3, inbox):
        """Test that cancelling the pump does not report a failure."""
        async def forever():
            await asyncio.sleep(10)

        w3.subscription_manager.handle_subscriptions.side_effect = forever
        source = EventSource(w3, inbox)

        task = asyncio.create_task(source.pump())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert inbox.empty()

    @pytest.mark.asyncio
    async def test_stop_ignores_dead_connection(self, w3, inbox):
        """Test that unsubscribe errors during shutdown are only logged."""
        w3.subscription_manager.unsubscribe_all.side_effect = ConnectionError("closed")
        source = EventSource(w3, inbox)

        await source.stop()

        w3.subscription_manager.unsubscribe_all.assert_awaited_once()


class TestParseEventTopic:
    """Tests for parse_event_topic_as_int."""

    def test_hex_string(self):
        assert parse_event_topic_as_int("0x" + "00" * 31 + "ff") == 255

    def test_bytes(self):
        assert parse_event_topic_as_int((4096).to_bytes(32, "big")) == 4096

    def test_unprefixed_and_empty(self):
        assert parse_event_topic_as_int("10") == 16
        assert parse_event_topic_as_int("0x") == 0

    def test_unsupported_type(self):
        assert parse_event_topic_as_int(None) == 0
