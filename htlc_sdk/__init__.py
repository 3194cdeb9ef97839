"""
htlc SDK - Hash Time-Locked Swaps

Atomic swaps of one fungible token: a sender locks tokens under a SHA256
hashlock; the recipient withdraws by revealing the preimage, or the sender
refunds after the timelock. Authorized relayers can complete swaps that
originated on a foreign chain by minting on this side.

Usage:
    from htlc_sdk import HTLCContract, Authorization, InMemoryLedger
    from htlc_sdk import generate_secret

    ledger = InMemoryLedger({"alice": 1000})
    htlc = HTLCContract("htlc", "token", ledger, Authorization("owner"))

    secret, hashlock = generate_secret()
    lock_id = htlc.initiate_swap("alice", hashlock, "bob", 100, 1)
    htlc.withdraw("bob", lock_id, secret)
"""

from .core import (
    Lock,
    LockStatus,
    FundingState,
    TimeUnit,
    generate_secret,
    verify_preimage,
    hash_preimage,
    derive_lock_id,
    derive_completion_id,
)
from .errors import (
    HTLCError,
    InvalidInput,
    DuplicateLock,
    NotFound,
    Unauthorized,
    AlreadySettled,
    SecretMismatch,
    TimelockNotExpired,
    TransferFailed,
    LockNotFunded,
    DuplicateCompletion,
)
from .auth import Authorization
from .registry import LockRegistry
from .config import HTLCConfig
from .ledger import TokenLedger, LedgerResult, InMemoryLedger, EVMTokenLedger
from .htlc import HTLCContract, PendingTransfer, TransferKind, TransferState
from .swap import SettlementWatcher, WatcherConfig
from .client import HTLCClient

__version__ = "0.1.0"
__all__ = [
    # Core types
    "Lock",
    "LockStatus",
    "FundingState",
    "TimeUnit",
    # Utilities
    "generate_secret",
    "verify_preimage",
    "hash_preimage",
    "derive_lock_id",
    "derive_completion_id",
    # Errors
    "HTLCError",
    "InvalidInput",
    "DuplicateLock",
    "NotFound",
    "Unauthorized",
    "AlreadySettled",
    "SecretMismatch",
    "TimelockNotExpired",
    "TransferFailed",
    "LockNotFunded",
    "DuplicateCompletion",
    # Contract
    "Authorization",
    "LockRegistry",
    "HTLCConfig",
    "HTLCContract",
    "PendingTransfer",
    "TransferKind",
    "TransferState",
    # Ledgers
    "TokenLedger",
    "LedgerResult",
    "InMemoryLedger",
    "EVMTokenLedger",
    # Settlement
    "SettlementWatcher",
    "WatcherConfig",
    "HTLCClient",
]
