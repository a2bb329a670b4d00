#!/usr/bin/env python3
"""Data models for the reward watcher.

This module provides the data classes passed between the event source, the
ticker and the round/reward monitor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


def _to_int(value: Any) -> int:
    """Coerce an int or hex/decimal string field from a log receipt."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    text = str(value)
    if text.startswith('0x'):
        return int(text, 16) if len(text) > 2 else 0
    return int(text)


def _to_hex(value: Any) -> str:
    """Normalize bytes, HexBytes or str to a 0x-prefixed hex string."""
    if value is None:
        return '0x'
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    text = str(value)
    return text if text.startswith('0x') else '0x' + text


@dataclass(frozen=True, slots=True)
class LogEvent:
    """A log record received from a subscription.

    Attributes:
        block_number: Block the log was emitted in
        transaction_hash: Hash of the emitting transaction (with 0x prefix)
        topics: Indexed topics, topic[0] being the event signature hash
        address: Address of the emitting contract
        log_index: Index of the log entry in the block
    """

    block_number: int
    transaction_hash: str
    topics: tuple[str, ...] = ()
    address: str = ''
    log_index: int = 0

    def __str__(self) -> str:
        """Human-readable string representation."""
        return (
            f"LogEvent(block={self.block_number}, "
            f"tx={self.transaction_hash[:10]}..., "
            f"topics={len(self.topics)})"
        )

    @classmethod
    def from_log(cls, log: Any) -> "LogEvent":
        """Build a LogEvent from a raw log receipt.

        Handles both dict-like receipts (websocket subscriptions) and
        attribute objects (EventData / AttributeDict), with numeric fields
        given either as ints or hex strings.

        Args:
            log: Raw log receipt

        Returns:
            Parsed LogEvent
        """
        if hasattr(log, 'get') and callable(log.get):
            get = log.get
        else:
            def get(key: str, default: Any = None) -> Any:
                return getattr(log, key, default)

        topics = get('topics', []) or []
        if not isinstance(topics, (list, tuple)):
            topics = list(topics)

        return cls(
            block_number=_to_int(get('blockNumber', 0)),
            transaction_hash=_to_hex(get('transactionHash', b'')),
            topics=tuple(_to_hex(topic) for topic in topics),
            address=str(get('address', '') or ''),
            log_index=_to_int(get('logIndex', 0)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "block_number": self.block_number,
            "transaction_hash": self.transaction_hash,
            "topics": list(self.topics),
            "address": self.address,
            "log_index": self.log_index
        }


@dataclass(slots=True)
class RoundState:
    """Round tracking owned by the monitor loop.

    Attributes:
        current_round: Number of the most recently observed round
        round_started_at: When the current round was observed, None until the first NewRound
        reward_called: Whether a reward call has been seen since the last NewRound
    """

    current_round: int = 0
    round_started_at: datetime | None = None
    reward_called: bool = False

    @property
    def round_active(self) -> bool:
        return self.round_started_at is not None


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """Address and positional topic clauses for a log subscription."""

    address: str
    topics: tuple[str | None, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {"address": self.address, "topics": list(self.topics)}


class InputKind(Enum):
    """Kinds of input consumed by the monitor loop."""
    NEW_ROUND = "new_round"
    REWARD = "reward"
    TICK = "tick"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class MonitorInput:
    """One item in the monitor inbox."""

    kind: InputKind
    event: LogEvent | None = None
    error: BaseException | None = None
    source: str = ''

    @classmethod
    def new_round(cls, event: LogEvent, source: str = "NewRound") -> "MonitorInput":
        return cls(InputKind.NEW_ROUND, event=event, source=source)

    @classmethod
    def reward(cls, event: LogEvent, source: str = "Reward") -> "MonitorInput":
        return cls(InputKind.REWARD, event=event, source=source)

    @classmethod
    def tick(cls) -> "MonitorInput":
        return cls(InputKind.TICK, source="ticker")

    @classmethod
    def failure(cls, source: str, error: BaseException) -> "MonitorInput":
        return cls(InputKind.FAILURE, error=error, source=source)
