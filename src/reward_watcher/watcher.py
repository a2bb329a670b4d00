import asyncio
import contextlib
import logging

from web3 import AsyncWeb3

from .config import WatcherConfig
from .exceptions import SubscriptionError
from .models import InputKind
from .notifier import TelegramNotifier
from .reward_monitor import Notifier, RewardMonitor
from .utils.connection_selector import Web3Factory, select_connection
from .utils.contract_utility import ContractUtility
from .utils.event_listener_utility import EventSource

# Get logger for this module
logger = logging.getLogger(__name__)


class RewardWatcher:
    """
    Reward watcher that subscribes to BondingManager Reward and RoundsManager
    NewRound logs and alerts through Telegram when the tracked orchestrator
    calls reward or misses it.
    """

    def __init__(
        self,
        config: WatcherConfig,
        notifier: Notifier | None = None,
        web3_factory: Web3Factory | None = None
    ) -> None:
        """
        Initialize the RewardWatcher with configuration.

        Loads both ABIs and builds the log filters up front so that a missing
        or broken ABI file fails before any connection is made.

        :param config: Watcher configuration object
        :param notifier: Alert sender (defaults to a TelegramNotifier)
        :param web3_factory: Builds an unconnected AsyncWeb3 per endpoint URL
        """
        self.config = config
        self.web3_factory = web3_factory
        self.w3: AsyncWeb3 | None = None
        self.rpc_url: str | None = None
        self.event_source: EventSource | None = None

        logger.info("Starting RewardWatcher initialization")
        try:
            self.config.log_config()

            logger.debug(f"Loading ABIs from {config.abi_dir}...")
            self.contract_utility = ContractUtility(config.abi_dir)
            self.reward_filter = self.contract_utility.reward_filter(config.orchestrator)
            self.new_round_filter = self.contract_utility.new_round_filter()
            logger.debug("Event filters built")

            self.notifier = notifier or TelegramNotifier(config.telegram)
            self.monitor = RewardMonitor(
                orchestrator=config.orchestrator,
                notifier=self.notifier,
                delay=config.delay,
                notify_interval=config.notify_interval
            )

            logger.info("RewardWatcher initialized")

        except Exception as e:
            logger.error(f"RewardWatcher initialization failed: {e}")
            raise

    async def connect(self) -> AsyncWeb3:
        """Select the first working RPC endpoint."""
        self.w3, self.rpc_url = await select_connection(
            self.config.rpc_urls,
            timeout=self.config.connect_timeout,
            web3_factory=self.web3_factory
        )
        return self.w3

    async def subscribe(self) -> EventSource:
        """Create the Reward and NewRound subscriptions on the open connection."""
        if self.w3 is None:
            raise RuntimeError("subscribe() called before connect()")

        self.event_source = EventSource(self.w3, self.monitor.inbox)
        await self.event_source.subscribe("Reward", InputKind.REWARD, self.reward_filter)
        await self.event_source.subscribe("NewRound", InputKind.NEW_ROUND, self.new_round_filter)
        return self.event_source

    async def shutdown(self) -> None:
        """Release subscriptions and the connection."""
        logger.info("Shutting down RewardWatcher...")
        if self.event_source is not None:
            await self.event_source.stop()
        if self.w3 is not None:
            try:
                await self.w3.provider.disconnect()
            except Exception as e:
                logger.warning(f"Error disconnecting from {self.rpc_url}: {e}")
        logger.info("RewardWatcher stopped")

    async def run(self) -> SubscriptionError | None:
        """
        Main entry point for the RewardWatcher.

        Connects, subscribes and runs the monitor loop until a subscription
        fails at runtime.

        :return: The SubscriptionError that ended monitoring
        :raises AllEndpointsUnreachable: If no endpoint could be used
        :raises SubscriptionError: If a subscription could not be created
        """
        await self.connect()
        try:
            event_source = await self.subscribe()
            pump = asyncio.create_task(event_source.pump(), name="event-source-pump")
            try:
                return await self.monitor.run()
            finally:
                pump.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await pump
        finally:
            await self.shutdown()
