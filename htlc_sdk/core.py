"""
Core types and interfaces for the htlc SDK.
"""

import hashlib
import secrets
import time
from enum import Enum
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, Union

from .errors import InvalidInput


class LockStatus(Enum):
    """Lock lifecycle states. Only OPEN -> WITHDRAWN or OPEN -> REFUNDED."""
    OPEN = "open"
    WITHDRAWN = "withdrawn"     # Recipient revealed the preimage
    REFUNDED = "refunded"       # Sender reclaimed after end_time


class FundingState(Enum):
    """Whether the ledger has confirmed the sender's deposit into the lock."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"           # Lock is unusable


class TimeUnit(Enum):
    """Caller-facing timeout units, valued in nanoseconds."""
    SECONDS = 1_000_000_000
    MINUTES = 60 * 1_000_000_000
    HOURS = 3600 * 1_000_000_000

    @classmethod
    def parse(cls, unit: Union[str, "TimeUnit"]) -> "TimeUnit":
        if isinstance(unit, TimeUnit):
            return unit
        try:
            return cls[str(unit).upper()]
        except KeyError:
            raise InvalidInput(f"Unknown timeout unit: {unit}")


TERMINAL_STATES = (LockStatus.WITHDRAWN, LockStatus.REFUNDED)


@dataclass
class Lock:
    """One swap's committed funds, hashlock, parties and deadline."""
    id: str                 # SHA256 lock id (hex, 64 chars)
    secret_hash: str        # SHA256 hashlock (hex, 64 chars)
    sender: str             # Funded the lock, may refund after end_time
    recipient: str          # May withdraw with the preimage
    amount: int             # Token smallest units, fixed at creation
    end_time: int           # Absolute deadline (ns)
    status: LockStatus = LockStatus.OPEN
    preimage: str = ""

    # Destination metadata (free-form)
    target_chain: str = ""
    target_address: str = ""

    created_at: int = 0
    funding: FundingState = FundingState.PENDING
    funding_transfer_id: Optional[str] = None
    settlement_transfer_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == LockStatus.OPEN

    def is_expired(self, now: int) -> bool:
        return now >= self.end_time

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["funding"] = self.funding.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Lock":
        data = dict(data)
        data["status"] = LockStatus(data.get("status", "open"))
        data["funding"] = FundingState(data.get("funding", "pending"))
        return cls(**data)


# =============================================================================
# Digest Utilities
# =============================================================================

def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def hash_preimage(preimage: str) -> str:
    """SHA256 of the UTF-8 preimage, as hex."""
    return hashlib.sha256(preimage.encode("utf-8")).hexdigest()


def generate_secret() -> tuple[str, str]:
    """
    Generate a random secret and its SHA256 hashlock.

    Returns:
        (secret, hashlock_hex) where secret is a 64-char hex string that is
        itself the preimage (hashed as UTF-8 text)
    """
    secret = secrets.token_hex(32)
    return secret, hash_preimage(secret)


def verify_preimage(preimage: str, hashlock_hex: str) -> bool:
    """
    Verify that SHA256(preimage) == hashlock.

    Args:
        preimage: Secret text as presented by the recipient
        hashlock_hex: Expected SHA256 hash as hex string

    Returns:
        True if valid
    """
    try:
        expected = normalize_digest(hashlock_hex)
    except InvalidInput:
        return False
    return secrets.compare_digest(hash_preimage(preimage), expected)


def normalize_digest(value: Union[str, bytes], field: str = "digest") -> str:
    """Return a 32-byte digest as lowercase hex without 0x prefix."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        text = str(value)
        if text.startswith("0x"):
            text = text[2:]
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raise InvalidInput(f"{field} is not valid hex")
    if len(raw) != 32:
        raise InvalidInput(f"{field} must be 32 bytes, got {len(raw)}")
    return raw.hex()


def _u128_le(value: int) -> bytes:
    return value.to_bytes(16, "little")


def _u64_le(value: int) -> bytes:
    return value.to_bytes(8, "little")


def derive_lock_id(secret_hash: str, recipient: str, sender: str,
                   amount: int, end_time: int, now: int) -> str:
    """
    Lock id = SHA256(secret_hash || recipient || sender || amount || end_time || now).

    amount is u128 little-endian, end_time and now are u64 little-endian.
    The creation timestamp salts the id so identical parameters never collide
    across calls.
    """
    payload = b"".join([
        bytes.fromhex(secret_hash),
        recipient.encode("utf-8"),
        sender.encode("utf-8"),
        _u128_le(amount),
        _u64_le(end_time),
        _u64_le(now),
    ])
    return sha256(payload).hex()


def derive_completion_id(source_chain: str, source_address: str,
                         destination: str, amount: int, preimage: str) -> str:
    """Completion id = SHA256(source_chain || source_address || destination || amount || preimage)."""
    payload = b"".join([
        source_chain.encode("utf-8"),
        source_address.encode("utf-8"),
        destination.encode("utf-8"),
        _u128_le(amount),
        preimage.encode("utf-8"),
    ])
    return sha256(payload).hex()


def timeout_to_ns(duration: int, unit: Union[str, TimeUnit] = TimeUnit.HOURS) -> int:
    """Normalize a caller-supplied timeout to nanoseconds."""
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise InvalidInput("Timeout must be an integer")
    if duration < 0:
        raise InvalidInput("Timeout must not be negative")
    return duration * TimeUnit.parse(unit).value


def now_ns() -> int:
    """Wall-clock time in nanoseconds (survives restarts, unlike monotonic)."""
    return time.time_ns()


# =============================================================================
# Constants
# =============================================================================

DEFAULT_TIMEOUT_UNIT = TimeUnit.HOURS

# Note attached to the funding transfer
FUNDING_NOTE = "Locking tokens for cross-chain swap"

# 0x-prefixed 20-byte EVM address
EVM_ADDRESS_LENGTH = 42

# Upper bound for u128 amounts
MAX_AMOUNT = 2 ** 128 - 1
