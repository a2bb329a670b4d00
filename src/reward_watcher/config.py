#!/usr/bin/env python3
"""Configuration management for the reward watcher.

This module provides type-safe configuration dataclasses with validation.
Configuration is loaded from parsed command line arguments and environment
variables, with sensible defaults where appropriate.
"""

import logging
import os
import re
from argparse import Namespace
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from urllib.parse import urlparse

from web3 import Web3

from .exceptions import ConfigError

# Get logger for this module
logger = logging.getLogger(__name__)

# Livepeer protocol contracts on Arbitrum One
BONDING_MANAGER_ADDRESS = "0x35Bcf3c30594191d53231E4FF333E8A770453e40"
ROUNDS_MANAGER_ADDRESS = "0xdd6f56DcC28D3F5f27084381fE8Df634985cc39f"

DEFAULT_RPC_URLS: tuple[str, ...] = ("wss://arbitrum-one-rpc.publicnode.com",)
DEFAULT_DELAY = "2h"
DEFAULT_NOTIFY_INTERVAL = "0"
DEFAULT_CONNECT_TIMEOUT = "5s"
DEFAULT_ABI_DIR = "ABI"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(text: str) -> timedelta:
    """Parse a Go-style duration string such as ``2h``, ``1h30m`` or ``250ms``.

    A bare ``0`` is accepted as zero.

    Raises:
        ConfigError: If the string is not a valid non-negative duration
    """
    value = text.strip()
    if not value:
        raise ConfigError("Empty duration")
    if value == "0":
        return timedelta(0)

    position = 0
    seconds = 0.0
    for match in _DURATION_PART.finditer(value):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        position = match.end()

    if position != len(value) or position == 0:
        raise ConfigError(f"Invalid duration: {text!r} (expected e.g. 90s, 30m, 2h, 1h30m)")
    return timedelta(seconds=seconds)


def format_duration(value: timedelta) -> str:
    """Render a timedelta compactly, e.g. ``2h``, ``1h30m``, ``45s``."""
    total = value.total_seconds()
    if total == 0:
        return "0s"
    if total < 1:
        return f"{round(total * 1000)}ms"

    hours, rest = divmod(int(total), 3600)
    minutes = rest // 60
    # Millisecond resolution, matching what parse_duration accepts
    seconds = round(total - hours * 3600 - minutes * 60, 3)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds:
        parts.append(f"{seconds:g}s")
    return "".join(parts)


def to_websocket_url(url: str) -> str:
    """Convert an HTTP RPC URL to its WebSocket form; other schemes pass through."""
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    return url


@dataclass(frozen=True, slots=True)
class TelegramConfig:
    """Credentials for the Telegram notification channel.

    Attributes:
        bot_token: Bot API token
        chat_id: Destination chat id
        dry_run: Log alerts instead of sending them
    """

    bot_token: str
    chat_id: str
    dry_run: bool = False

    def __post_init__(self) -> None:
        """Validate notification credentials."""
        if self.dry_run:
            return
        if not self.bot_token:
            raise ConfigError("TELEGRAM_BOT_TOKEN environment variable is required")
        if not self.chat_id:
            raise ConfigError("TELEGRAM_CHAT_ID environment variable is required")
        # Both values end up in the request URL or body verbatim
        if not self.bot_token.isprintable() or any(c.isspace() for c in self.bot_token):
            raise ConfigError("TELEGRAM_BOT_TOKEN contains whitespace or non-printable characters")
        if not self.chat_id.isprintable():
            raise ConfigError("TELEGRAM_CHAT_ID contains non-printable characters")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, dry_run: bool = False) -> "TelegramConfig":
        env = os.environ if environ is None else environ
        return cls(
            bot_token=env.get("TELEGRAM_BOT_TOKEN", ""),
            chat_id=env.get("TELEGRAM_CHAT_ID", ""),
            dry_run=dry_run
        )


@dataclass(frozen=True, slots=True)
class WatcherConfig:
    """Main configuration for the reward watcher.

    Attributes:
        orchestrator: Checksummed address of the tracked orchestrator
        rpc_urls: Endpoint candidates, tried in order
        telegram: Notification channel configuration
        delay: How long after a new round to wait for the reward call
        notify_interval: Tick interval for the missed-reward check, zero disables it
        abi_dir: Directory holding BondingManager.json and RoundsManager.json
        connect_timeout: Budget in seconds for the whole endpoint selection
    """

    orchestrator: str
    rpc_urls: tuple[str, ...]
    telegram: TelegramConfig
    delay: timedelta = timedelta(hours=2)
    notify_interval: timedelta = timedelta(0)
    abi_dir: Path = Path(DEFAULT_ABI_DIR)
    connect_timeout: float = 5.0

    def __post_init__(self) -> None:
        """Validate watcher configuration."""
        if not self.orchestrator:
            raise ConfigError("Orchestrator address is required")
        if not Web3.is_address(self.orchestrator):
            raise ConfigError(f"Invalid orchestrator address: {self.orchestrator}")

        checksummed = Web3.to_checksum_address(self.orchestrator)
        if checksummed != self.orchestrator:
            # Use object.__setattr__ since dataclass is frozen
            object.__setattr__(self, 'orchestrator', checksummed)

        if not self.rpc_urls:
            raise ConfigError("At least one RPC URL is required")
        for url in self.rpc_urls:
            scheme = urlparse(url).scheme
            if scheme not in ('http', 'https', 'ws', 'wss'):
                raise ConfigError(
                    f"Invalid RPC URL scheme: {scheme or '(none)'} in {url}. "
                    "Expected http, https, ws, or wss"
                )

        if self.delay <= timedelta(0):
            raise ConfigError(f"Delay must be positive, got {format_duration(self.delay)}")
        if self.notify_interval < timedelta(0):
            raise ConfigError("Notify interval must not be negative")
        if self.connect_timeout <= 0:
            raise ConfigError(f"Connect timeout must be positive, got {self.connect_timeout}")

    @classmethod
    def from_args(cls, args: Namespace, environ: Mapping[str, str] | None = None) -> "WatcherConfig":
        """Build configuration from parsed CLI arguments and the environment.

        Args:
            args: Namespace with orchestrator, rpc_urls, delay, notify_interval,
                abi_dir, connect_timeout and dry_run
            environ: Environment mapping (defaults to os.environ)

        Returns:
            WatcherConfig instance with loaded values

        Raises:
            ConfigError: If any argument or required environment variable is missing or invalid
        """
        rpc_urls: Sequence[str] = args.rpc_urls or DEFAULT_RPC_URLS
        dry_run = bool(getattr(args, "dry_run", False))

        return cls(
            orchestrator=args.orchestrator,
            rpc_urls=tuple(rpc_urls),
            telegram=TelegramConfig.from_env(environ, dry_run=dry_run),
            delay=parse_duration(args.delay),
            notify_interval=parse_duration(args.notify_interval),
            abi_dir=Path(args.abi_dir),
            connect_timeout=parse_duration(args.connect_timeout).total_seconds()
        )

    @property
    def dry_run(self) -> bool:
        return self.telegram.dry_run

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Reward Watcher Configuration")
        logger.info("=" * 60)

        logger.info(f"Orchestrator: {self.orchestrator}")
        logger.info(f"BondingManager: {BONDING_MANAGER_ADDRESS}")
        logger.info(f"RoundsManager: {ROUNDS_MANAGER_ADDRESS}")

        logger.info("RPC Endpoints:")
        for url in self.rpc_urls:
            logger.info(f"  {url}")
        logger.info(f"  Connect Timeout: {self.connect_timeout:g} seconds")

        logger.info("Alerting:")
        logger.info(f"  Delay: {format_duration(self.delay)}")
        if self.notify_interval:
            logger.info(f"  Notify Interval: {format_duration(self.notify_interval)}")
        else:
            logger.info("  Notify Interval: disabled")
        logger.info(f"  ABI Directory: {self.abi_dir}")

        logger.info("Telegram:")
        if self.telegram.dry_run:
            logger.info("  Mode: DRY RUN")
        else:
            logger.info("  Bot Token: [CONFIGURED]")
            logger.info(f"  Chat ID: {self.telegram.chat_id}")

        logger.info("=" * 60)
