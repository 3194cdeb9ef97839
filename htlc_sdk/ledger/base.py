"""
Token ledger interface consumed by the HTLC.

The ledger is an external collaborator. Every operation reports an outcome
instead of raising: success, failure, or pending (confirmed later through
status()).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict


@dataclass
class LedgerResult:
    """Result from a ledger operation."""
    success: bool
    pending: bool = False           # Submitted, outcome not yet known
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    data: Optional[Dict] = None

    @classmethod
    def ok(cls, tx_hash: str = None, **data) -> "LedgerResult":
        return cls(success=True, tx_hash=tx_hash, data=data or None)

    @classmethod
    def failed(cls, error: str, tx_hash: str = None) -> "LedgerResult":
        return cls(success=False, error=error, tx_hash=tx_hash)

    @classmethod
    def submitted(cls, tx_hash: str) -> "LedgerResult":
        return cls(success=False, pending=True, tx_hash=tx_hash)


class TokenLedger(ABC):
    """Minimal fungible-token contract the HTLC drives."""

    @abstractmethod
    def transfer(self, sender: str, receiver: str, amount: int) -> LedgerResult:
        """Move amount from sender to receiver."""

    @abstractmethod
    def transfer_with_notification(self, sender: str, receiver: str,
                                   amount: int, note: str) -> LedgerResult:
        """Transfer where the receiver (the HTLC) reacts to the outcome."""

    @abstractmethod
    def mint(self, receiver: str, amount: int) -> LedgerResult:
        """Create amount new tokens for receiver."""

    def is_valid_identity(self, identity: str) -> bool:
        """Whether identity can hold a balance on this ledger."""
        return bool(identity)

    def status(self, tx_hash: str) -> Optional[LedgerResult]:
        """
        Final outcome of a previously pending operation.

        Returns None while still pending. Synchronous ledgers never hand out
        pending results, so the default has nothing to look up.
        """
        return None
