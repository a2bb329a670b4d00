"""
Orchestrator reward watcher.

Watches Livepeer round and reward events on Arbitrum and sends Telegram
alerts when a tracked orchestrator misses its reward call.
"""

from .config import TelegramConfig, WatcherConfig
from .models import LogEvent, RoundState
from .reward_monitor import RewardMonitor
from .watcher import RewardWatcher

__all__ = ["WatcherConfig", "TelegramConfig", "RewardMonitor", "RewardWatcher", "LogEvent", "RoundState"]
__version__ = "0.1.0"
