#!/usr/bin/env python3
"""Entry point for the orchestrator reward watcher.

Parses the tracked orchestrator and RPC endpoints from the command line,
loads Telegram credentials from the environment and runs the monitor until
a subscription fails.
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from .config import (
    DEFAULT_ABI_DIR,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DELAY,
    DEFAULT_NOTIFY_INTERVAL,
    DEFAULT_RPC_URLS,
    WatcherConfig,
)
from .exceptions import ConfigError, ConnectivityError, SubscriptionError
from .watcher import RewardWatcher

EXIT_FATAL = 1
EXIT_SUBSCRIPTION_FAILED = 3


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="reward-watcher",
        description="Alert on Telegram when a Livepeer orchestrator calls or misses reward",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""Environment Variables:
  TELEGRAM_BOT_TOKEN   - Telegram bot token (required unless --dry-run)
  TELEGRAM_CHAT_ID     - Destination chat id (required unless --dry-run)
  ALERT_DELAY          - Default for --delay
  NOTIFY_INTERVAL      - Default for --notify-interval
  ABI_DIR              - Default for --abi-dir
  LOG_LEVEL            - Logging level (can be overridden with --log-level)

Default RPC endpoint: {DEFAULT_RPC_URLS[0]}
        """
    )
    parser.add_argument(
        "orchestrator",
        help="Address of the orchestrator to watch"
    )
    parser.add_argument(
        "rpc_urls",
        nargs="*",
        metavar="rpc",
        help="RPC endpoints to try in order (http(s) URLs are used as ws(s))"
    )
    parser.add_argument(
        "--delay",
        default=os.environ.get("ALERT_DELAY", DEFAULT_DELAY),
        help="Time to wait after a new round before warning, e.g. 2h, 30m (default: 2h)"
    )
    parser.add_argument(
        "--notify-interval",
        default=os.environ.get("NOTIFY_INTERVAL", DEFAULT_NOTIFY_INTERVAL),
        help="How often to check and repeat the warning, e.g. 1h; 0 disables it (default: 0)"
    )
    parser.add_argument(
        "--abi-dir",
        default=os.environ.get("ABI_DIR", DEFAULT_ABI_DIR),
        help="Directory containing BondingManager.json and RoundsManager.json (default: ABI)"
    )
    parser.add_argument(
        "--connect-timeout",
        default=DEFAULT_CONNECT_TIMEOUT,
        help="Time budget for finding a working RPC endpoint (default: 5s)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        help="Log alerts instead of sending them to Telegram"
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    return parser


async def main(argv: list[str] | None = None) -> None:
    """Main entry point for the reward watcher.

    Raises:
        SystemExit: 1 on startup errors, 3 when a subscription fails at runtime
    """
    args: argparse.Namespace = build_parser().parse_args(argv)

    setup_logging(args.log_level)
    logger.info("=== Orchestrator Reward Watcher Starting ===")

    try:
        config: WatcherConfig = WatcherConfig.from_args(args)
        watcher: RewardWatcher = RewardWatcher(config)
        failure = await watcher.run()

    except ConfigError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your arguments and environment variables:")
        logger.error("  - TELEGRAM_BOT_TOKEN: Telegram bot token")
        logger.error("  - TELEGRAM_CHAT_ID: Telegram chat id")
        logger.error(f"  - {args.abi_dir}/BondingManager.json and {args.abi_dir}/RoundsManager.json "
                     "(run reward-watcher-download-abis)")
        sys.exit(EXIT_FATAL)

    except ConnectivityError as e:
        logger.error(f"RPC connection failed: {e}")
        for detail in getattr(e, "errors", []):
            logger.error(f"  - {detail}")
        sys.exit(EXIT_FATAL)

    except SubscriptionError as e:
        logger.error(f"Subscribe error: {e}")
        sys.exit(EXIT_FATAL)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(EXIT_FATAL)

    if failure is not None:
        logger.error(f"Exiting after {failure}")
        sys.exit(EXIT_SUBSCRIPTION_FAILED)


def cli() -> None:
    """Console script entry point."""
    load_dotenv()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
        sys.exit(0)


if __name__ == "__main__":
    cli()
