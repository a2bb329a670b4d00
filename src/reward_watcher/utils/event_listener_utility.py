"""
Event Listener Utility for real-time log subscriptions.

Registers web3 LogsSubscriptions on an already connected websocket and turns
every received log into a monitor input. When the subscription stream dies
the failure is delivered through the same inbox.
"""

import asyncio
import logging
from typing import Any

from web3 import AsyncWeb3, Web3
from web3.utils.subscriptions import LogsSubscription, LogsSubscriptionContext

from ..exceptions import SubscriptionError
from ..models import FilterSpec, InputKind, LogEvent, MonitorInput


class EventSource:
    """
    Feeds log subscriptions from one websocket connection into a monitor inbox.

    Each subscription is labelled ("Reward", "NewRound") and tagged with the
    input kind the monitor should dispatch it as. Arrival order is preserved
    per subscription; nothing is promised across subscriptions.
    """

    def __init__(self, w3: AsyncWeb3, inbox: "asyncio.Queue[MonitorInput]") -> None:
        """
        Initialize the EventSource.

        Args:
            w3: Connected AsyncWeb3 instance over a persistent provider
            inbox: Queue consumed by the monitor loop
        """
        self.w3 = w3
        self.inbox = inbox
        self.labels: list[str] = []
        self.logs_received = 0

        # Setup logging
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    async def subscribe(self, label: str, kind: InputKind, spec: FilterSpec) -> None:
        """
        Subscribe to logs matching a filter.

        Args:
            label: Human-readable name used in logs and alerts
            kind: Input kind delivered to the monitor for each log
            spec: Contract address and topic clauses

        Raises:
            SubscriptionError: If the node rejects the subscription
        """
        async def handler(context: LogsSubscriptionContext) -> None:
            await self._enqueue(label, kind, context.result)

        logs_subscription = LogsSubscription(
            label=f"{label}-subscription",
            address=Web3.to_checksum_address(spec.address),
            topics=list(spec.topics),
            handler=handler,
        )

        self.logger.info(f"Subscribing to {label} events on {spec.address}")
        self.logger.debug(f"{label} filter: {spec.to_dict()}")

        try:
            await self.w3.subscription_manager.subscribe([logs_subscription])
        except Exception as e:
            raise SubscriptionError(label, e) from e

        self.labels.append(label)

    async def _enqueue(self, label: str, kind: InputKind, log_receipt: Any) -> None:
        try:
            event = LogEvent.from_log(log_receipt)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Dropping malformed {label} log: {e}")
            return

        self.logs_received += 1
        self.logger.debug(f"{label} log received: {event.to_dict()}")
        await self.inbox.put(MonitorInput(kind, event=event, source=label))

    async def pump(self) -> None:
        """
        Deliver subscription messages until the stream fails.

        Runs the web3 subscription manager. Whether it raises or simply
        returns, exactly one FAILURE input is queued and the pump exits;
        there is no resubscription.
        """
        source = "/".join(self.labels) or "Event"
        try:
            await self.w3.subscription_manager.handle_subscriptions()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = SubscriptionError(source, e)
        else:
            error = SubscriptionError(source, "subscription stream ended")

        self.logger.error(str(error))
        await self.inbox.put(MonitorInput.failure(source, error))

    async def stop(self) -> None:
        """Unsubscribe from everything, ignoring errors from a dead connection."""
        self.logger.info("Stopping event subscriptions...")
        try:
            await self.w3.subscription_manager.unsubscribe_all()
        except Exception as e:
            self.logger.warning(f"Error during unsubscribe: {e}")


def parse_event_topic_as_int(topic: Any) -> int:
    """
    Parse an event topic (bytes or hex string) as a big-endian unsigned integer.

    Ethereum event topics can come in different formats depending on the provider:
    - As bytes objects: b'\x00\x00...\x0f\xa0'
    - As hex strings: "0x0000000000000000000000000000000000000000000000000000000000000fa0"

    :param topic: The topic to parse (bytes, str, or other)
    :return: Integer value of the topic
    """
    if isinstance(topic, (bytes, bytearray)):
        return int.from_bytes(topic, byteorder='big')
    elif isinstance(topic, str):
        # Remove '0x' prefix if present
        hex_str = topic[2:] if topic.startswith('0x') else topic
        return int(hex_str, 16) if hex_str else 0
    else:
        return 0
