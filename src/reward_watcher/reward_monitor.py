#!/usr/bin/env python3
"""Round/reward correlation for the reward watcher.

This module holds the state machine that correlates NewRound and Reward
events with a periodic tick and decides when to alert. All inputs arrive
through a single inbox and are handled one at a time, so the round state
is owned by the loop and needs no locking.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

from .config import format_duration
from .exceptions import SubscriptionError
from .models import InputKind, LogEvent, MonitorInput, RoundState
from .utils.event_listener_utility import parse_event_topic_as_int

# Get logger for this module
logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class Notifier(Protocol):
    async def send(self, message: str) -> bool: ...


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RewardMonitor:
    """Tracks the current round and alerts on reward calls and missed rewards.

    States:
    - Idle: no round observed yet
    - Pending: round started, reward not yet seen
    - Satisfied: round started (or Idle), reward already seen

    A tick alerts while the current round is Pending and older than the
    delay; the alert repeats on every tick until a reward arrives or a new
    round starts.
    """

    def __init__(
        self,
        orchestrator: str,
        notifier: Notifier,
        delay: timedelta,
        notify_interval: timedelta = timedelta(0),
        clock: Clock | None = None
    ) -> None:
        """Initialize the RewardMonitor.

        Args:
            orchestrator: Address of the tracked orchestrator (used in alert text)
            notifier: Sends alert text; failures must not raise
            delay: Round age after which a missing reward is alerted
            notify_interval: Tick interval, zero disables the tick
            clock: Returns the current time (defaults to UTC now)
        """
        self.orchestrator = orchestrator
        self.notifier = notifier
        self.delay = delay
        self.notify_interval = notify_interval
        self.clock: Clock = clock or utc_now

        self.state = RoundState()
        self.inbox: asyncio.Queue[MonitorInput] = asyncio.Queue()
        self.stop_reason: SubscriptionError | None = None
        self._tick_pending = False

        # Metrics tracking
        self.rounds_seen = 0
        self.rewards_seen = 0
        self.ticks = 0
        self.alerts_sent = 0
        self.alerts_failed = 0

        logger.info(
            f"RewardMonitor initialized for {orchestrator} "
            f"(delay {format_duration(delay)}, "
            f"notify interval {format_duration(notify_interval) if notify_interval else 'disabled'})"
        )

    async def _alert(self, message: str, level: int = logging.INFO) -> None:
        """Log an alert and hand it to the notifier once."""
        logger.log(level, message)
        try:
            delivered = await self.notifier.send(message)
        except Exception as e:
            logger.error(f"Notifier raised while sending alert: {e}", exc_info=True)
            delivered = False

        if delivered:
            self.alerts_sent += 1
        else:
            self.alerts_failed += 1

    async def handle_new_round(self, event: LogEvent) -> None:
        """Start tracking a new round.

        The round number is topic[1] read as a big-endian unsigned integer.
        A log with fewer than two topics is tracked as round 0.
        """
        if len(event.topics) > 1:
            round_number = parse_event_topic_as_int(event.topics[1])
        else:
            logger.warning(f"NewRound log without round topic ({event}), tracking as round 0")
            round_number = 0

        self.state.current_round = round_number
        self.state.round_started_at = self.clock()
        self.state.reward_called = False
        self.rounds_seen += 1

        logger.info(f"New round {round_number} started at block {event.block_number}")
        self.log_metrics()

    async def handle_reward(self, event: LogEvent) -> str:
        """Record a reward call and announce it."""
        self.state.reward_called = True
        self.rewards_seen += 1

        message = (
            f"✅ Reward called for {self.orchestrator} "
            f"at block {event.block_number}, tx {event.transaction_hash}"
        )
        await self._alert(message)
        return message

    def reward_overdue(self) -> bool:
        """Whether the current round has gone past the delay without a reward."""
        if self.state.reward_called or not self.state.round_active:
            return False
        return self.clock() - self.state.round_started_at >= self.delay

    async def handle_tick(self) -> str | None:
        """Alert if the reward for the current round is overdue."""
        self.ticks += 1
        if not self.reward_overdue():
            return None

        message = (
            f"❌ No reward called for {self.orchestrator} "
            f"in round {self.state.current_round} after {format_duration(self.delay)}"
        )
        await self._alert(message, logging.WARNING)
        return message

    async def handle_failure(self, source: str, error: BaseException | None) -> str:
        """Announce a subscription failure and record it as the stop reason."""
        if isinstance(error, SubscriptionError):
            failure = error
        else:
            failure = SubscriptionError(source, error if error is not None else "unknown error")
        self.stop_reason = failure

        message = f"⚠️ {failure}"
        await self._alert(message, logging.ERROR)
        return message

    async def dispatch(self, item: MonitorInput) -> bool:
        """Handle one inbox item.

        Returns:
            False if the loop must stop, True otherwise
        """
        match item.kind:
            case InputKind.NEW_ROUND if item.event is not None:
                await self.handle_new_round(item.event)
            case InputKind.REWARD if item.event is not None:
                await self.handle_reward(item.event)
            case InputKind.TICK:
                self._tick_pending = False
                await self.handle_tick()
            case InputKind.FAILURE:
                await self.handle_failure(item.source, item.error)
                return False
            case _:
                logger.warning(f"Ignoring malformed monitor input: {item}")
        return True

    async def run_ticker(self) -> None:
        """Queue a TICK every notify interval; never fires when the interval is zero.

        At most one tick waits in the inbox; further ticks are dropped until
        it is consumed.
        """
        if not self.notify_interval:
            logger.info("Notify interval is 0: missed-reward alerts are disabled")
            return

        interval = self.notify_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            if self._tick_pending:
                logger.debug("Previous tick still queued, dropping this one")
                continue
            self._tick_pending = True
            await self.inbox.put(MonitorInput.tick())

    async def run(self) -> SubscriptionError | None:
        """Consume the inbox until a subscription failure arrives.

        Returns:
            The SubscriptionError that ended the loop
        """
        logger.info("Monitoring started...")
        ticker = asyncio.create_task(self.run_ticker(), name="reward-monitor-ticker")
        try:
            while True:
                item = await self.inbox.get()
                if not await self.dispatch(item):
                    logger.error("Monitoring stopped after subscription failure")
                    return self.stop_reason
        finally:
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker

    def get_metrics(self) -> dict[str, int]:
        """Get current monitoring metrics.

        Returns:
            Dictionary of metric names to values
        """
        return {
            "rounds_seen": self.rounds_seen,
            "rewards_seen": self.rewards_seen,
            "ticks": self.ticks,
            "alerts_sent": self.alerts_sent,
            "alerts_failed": self.alerts_failed,
        }

    def log_metrics(self) -> None:
        """Log current monitoring metrics."""
        metrics = self.get_metrics()
        logger.info(
            f"RewardMonitor Metrics: "
            f"Rounds={metrics['rounds_seen']}, "
            f"Rewards={metrics['rewards_seen']}, "
            f"Ticks={metrics['ticks']}, "
            f"Alerts={metrics['alerts_sent']} sent/{metrics['alerts_failed']} failed"
        )
