"""
In-process token ledger for development and tests.

Balances only: no allowances, metadata or pausing. Operations settle
synchronously.
"""

import uuid
import logging
import threading
from typing import Dict, List

from .base import TokenLedger, LedgerResult

log = logging.getLogger(__name__)


class InMemoryLedger(TokenLedger):
    """Balance book keyed by identity."""

    def __init__(self, balances: Dict[str, int] = None):
        self._balances: Dict[str, int] = dict(balances or {})
        self._lock = threading.Lock()
        self.total_supply = sum(self._balances.values())
        self.history: List[Dict] = []

    def balance_of(self, identity: str) -> int:
        with self._lock:
            return self._balances.get(identity, 0)

    def credit(self, identity: str, amount: int):
        """Seed a balance (not a mint: nothing is recorded in history)."""
        with self._lock:
            self._balances[identity] = self._balances.get(identity, 0) + amount
            self.total_supply += amount

    def _record(self, op: str, **fields) -> str:
        tx_hash = uuid.uuid4().hex
        self.history.append({"op": op, "tx_hash": tx_hash, **fields})
        return tx_hash

    def transfer(self, sender: str, receiver: str, amount: int) -> LedgerResult:
        if sender == receiver:
            return LedgerResult.failed("Cannot transfer to yourself")
        if amount <= 0:
            return LedgerResult.failed("The amount should be a positive number")

        with self._lock:
            balance = self._balances.get(sender, 0)
            if balance < amount:
                log.warning(f"Ledger transfer rejected: {sender} has {balance}, needs {amount}")
                return LedgerResult.failed("Insufficient balance")
            self._balances[sender] = balance - amount
            self._balances[receiver] = self._balances.get(receiver, 0) + amount
            tx_hash = self._record("transfer", sender=sender, receiver=receiver, amount=amount)

        log.info(f"Transfer {amount} from {sender} to {receiver}")
        return LedgerResult.ok(tx_hash)

    def transfer_with_notification(self, sender: str, receiver: str,
                                   amount: int, note: str) -> LedgerResult:
        result = self.transfer(sender, receiver, amount)
        if result.success:
            log.info(f"Memo: {note}")
        return result

    def mint(self, receiver: str, amount: int) -> LedgerResult:
        if amount <= 0:
            return LedgerResult.failed("The amount should be a positive number")

        with self._lock:
            self._balances[receiver] = self._balances.get(receiver, 0) + amount
            self.total_supply += amount
            tx_hash = self._record("mint", receiver=receiver, amount=amount)

        log.info(f"Minted {amount} tokens to {receiver}")
        return LedgerResult.ok(tx_hash)
