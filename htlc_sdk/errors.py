"""
Error taxonomy for the htlc SDK.

Every precondition failure raises one of these before any state is touched.
"""


class HTLCError(Exception):
    """Base class for HTLC failures."""


class InvalidInput(HTLCError):
    """Non-positive amount, malformed digest, chain id or address."""


class DuplicateLock(HTLCError):
    """A lock with the derived id already exists."""


class NotFound(HTLCError):
    """No record under the given id."""


class Unauthorized(HTLCError):
    """Caller lacks the role required for this operation."""


class AlreadySettled(HTLCError):
    """Lock is no longer open."""


class SecretMismatch(HTLCError):
    """Preimage does not hash to the lock's secret_hash."""


class TimelockNotExpired(HTLCError):
    """Refund attempted before end_time."""


class TransferFailed(HTLCError):
    """The token ledger reported a failure."""

    def __init__(self, message: str, transfer_id: str = None):
        super().__init__(message)
        self.transfer_id = transfer_id


class LockNotFunded(HTLCError):
    """The deposit into the lock is unconfirmed or failed."""


class DuplicateCompletion(HTLCError):
    """A cross-chain completion with the same id was already processed."""
