"""
Settlement coordination for the htlc SDK.

Keeps asynchronous ledger outcomes flowing back into the contract.
"""

from .watcher import SettlementWatcher, WatcherConfig

__all__ = ["SettlementWatcher", "WatcherConfig"]
