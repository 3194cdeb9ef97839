"""
Settlement Watcher for the htlc SDK.

Monitors the token ledger for:
- Confirmation of pending transfers (deposits, payouts, mints)
- Open locks whose timelock has expired (refund now possible)

Runs as a background service so asynchronous ledger outcomes always reach
the contract's transfer book.
"""

import time
import logging
import threading
from typing import Callable, Optional, Set
from dataclasses import dataclass

from ..core import LockStatus, Lock
from ..errors import HTLCError
from ..htlc.contract import HTLCContract
from ..htlc.transfers import PendingTransfer, TransferState

log = logging.getLogger(__name__)


@dataclass
class WatcherConfig:
    """Watcher configuration."""
    poll_interval: int = 5          # seconds between ledger polls
    expiry_interval: int = 60       # seconds between expiry scans


class SettlementWatcher:
    """
    Background service that resolves pending ledger operations.

    Events:
    - on_transfer_confirmed: a pending transfer settled
    - on_transfer_failed: a pending transfer failed (payout failures are alerts)
    - on_lock_expired: an open lock passed its end_time
    """

    def __init__(self, contract: HTLCContract, config: WatcherConfig = None):
        self.contract = contract
        self.config = config or WatcherConfig()

        # Callbacks
        self.on_transfer_confirmed: Optional[Callable[[PendingTransfer], None]] = None
        self.on_transfer_failed: Optional[Callable[[PendingTransfer], None]] = None
        self.on_lock_expired: Optional[Callable[[Lock], None]] = None

        # State
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._expired_seen: Set[str] = set()

    def start(self):
        """Start watcher in background thread."""
        if self._running:
            return

        self._running = True
        self._thread = threading.Thread(target=self._watch_loop, daemon=True)
        self._thread.start()
        log.info("Settlement watcher started")

    def stop(self):
        """Stop watcher."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=5)
        log.info("Settlement watcher stopped")

    def _watch_loop(self):
        """Main watch loop."""
        last_poll = 0
        last_expiry_scan = 0

        while self._running:
            now = time.time()

            try:
                if now - last_poll >= self.config.poll_interval:
                    self.check_pending()
                    last_poll = now

                if now - last_expiry_scan >= self.config.expiry_interval:
                    self.check_expirations()
                    last_expiry_scan = now

            except Exception as e:
                log.error(f"Watcher error: {e}")

            time.sleep(1)

    def check_pending(self) -> int:
        """
        Poll the ledger once for every pending transfer.

        Returns:
            Number of transfers resolved
        """
        resolved = 0
        for transfer in self.contract.pending_transfers():
            if not transfer.tx_hash:
                continue

            outcome = self.contract.ledger.status(transfer.tx_hash)
            if outcome is None:
                continue

            try:
                updated = self.contract.apply_ledger_outcome(transfer.transfer_id, outcome)
            except HTLCError as e:
                # Failed deposits and payouts were already logged by the contract
                log.error(f"Transfer {transfer.transfer_id[:12]} resolved with error: {e}")
                updated = self.contract.transfers.get(transfer.transfer_id)

            resolved += 1
            if updated is None:
                continue
            if updated.state == TransferState.CONFIRMED and self.on_transfer_confirmed:
                self.on_transfer_confirmed(updated)
            elif updated.state == TransferState.FAILED and self.on_transfer_failed:
                self.on_transfer_failed(updated)

        if resolved:
            log.info(f"Resolved {resolved} pending transfer(s)")
        return resolved

    def check_expirations(self) -> int:
        """Report open locks whose refund window has opened (once per lock)."""
        now = self.contract.clock()
        open_locks = self.contract.list_locks(LockStatus.OPEN)
        # Settled locks never reopen
        self._expired_seen &= {lock.id for lock in open_locks}
        found = 0
        for lock in open_locks:
            if lock.id in self._expired_seen or not lock.is_expired(now):
                continue
            self._expired_seen.add(lock.id)
            found += 1
            log.info(f"Lock {lock.id[:16]}... expired, sender {lock.sender} may refund")
            if self.on_lock_expired:
                self.on_lock_expired(lock)
        return found
