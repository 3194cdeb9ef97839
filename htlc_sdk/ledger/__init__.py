"""
Token ledgers the HTLC can drive.

- InMemoryLedger: in-process balances, synchronous outcomes
- EVMTokenLedger: ERC-20 via web3, outcomes confirmed from receipts
"""

from .base import TokenLedger, LedgerResult
from .memory import InMemoryLedger
from .evm import EVMTokenLedger

__all__ = ["TokenLedger", "LedgerResult", "InMemoryLedger", "EVMTokenLedger"]
