"""
HTLC swap state machine.

Lock lifecycle:
    initiate_swap -> OPEN -> withdraw (preimage, recipient) -> WITHDRAWN
                          -> refund (after end_time, sender) -> REFUNDED

Every ledger movement goes through the transfer book first, so a lock's
status is committed before its funds are asked to move and a failed
movement is never silently dropped.

All mutating calls are serialized on one re-entrant lock: two calls touching
the same lock are strictly ordered and the OPEN check is the only mutual
exclusion withdraw/refund need.
"""

import logging
import threading
from typing import Optional, Dict, Any, List, Callable, Union

from ..core import (
    Lock, LockStatus, FundingState, TimeUnit,
    derive_lock_id, hash_preimage, normalize_digest, timeout_to_ns, now_ns,
    DEFAULT_TIMEOUT_UNIT, FUNDING_NOTE, MAX_AMOUNT,
)
from ..auth import Authorization
from ..registry import LockRegistry
from ..errors import (
    InvalidInput, NotFound, Unauthorized, AlreadySettled, SecretMismatch,
    TimelockNotExpired, TransferFailed, LockNotFunded,
)
from ..ledger.base import TokenLedger, LedgerResult
from .transfers import TransferBook, PendingTransfer, TransferKind, TransferState
from .cross_chain import CrossChainHandler, Completion, CrossChainCall

log = logging.getLogger(__name__)

MAX_U64 = 2 ** 64 - 1


class HTLCContract:
    """
    Hash time-locked contract for one fungible token.

    Args:
        contract_id: Identity of the HTLC on the ledger (holds locked funds)
        token_id: Identity of the token ledger (may resolve transfers)
        ledger: TokenLedger implementation
        auth: Owner / relayer authorization
        data_dir: Directory for durable tables (None = memory only)
        clock: Returns current time in nanoseconds
        replay_protection: Reject repeated cross-chain completions
    """

    def __init__(self, contract_id: str, token_id: str, ledger: TokenLedger,
                 auth: Authorization, data_dir: Optional[str] = None,
                 clock: Callable[[], int] = now_ns,
                 replay_protection: bool = True):
        self.contract_id = contract_id
        self.token_id = token_id
        self.ledger = ledger
        self.auth = auth
        self.clock = clock

        self.locks = LockRegistry(data_dir)
        self.transfers = TransferBook(data_dir)
        self.cross_chain = CrossChainHandler(
            auth,
            issue_mint=self._issue_mint,
            clock=clock,
            data_dir=data_dir,
            replay_protection=replay_protection,
            is_valid_destination=ledger.is_valid_identity,
        )

        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config, ledger: TokenLedger,
                    clock: Callable[[], int] = now_ns) -> "HTLCContract":
        auth = Authorization(config.owner_id, config.data_dir, config.relayers)
        return cls(
            contract_id=config.contract_id,
            token_id=config.token_id,
            ledger=ledger,
            auth=auth,
            data_dir=config.data_dir,
            clock=clock,
            replay_protection=config.replay_protection,
        )

    # =========================================================================
    # Swap Lifecycle
    # =========================================================================

    def initiate_swap(self, caller: str, secret_hash: Union[str, bytes], recipient: str,
                      amount: int, timeout_duration: int,
                      target_chain: str = "", target_address: str = "",
                      timeout_unit: Union[str, TimeUnit] = DEFAULT_TIMEOUT_UNIT) -> str:
        """
        Lock amount from caller for recipient under secret_hash.

        The lock is recorded before the deposit is requested. The deposit
        outcome is reported via on_transfer_confirmed; a synchronous ledger
        rejection raises TransferFailed and leaves the lock unfunded.

        Returns:
            lock id (64 hex chars)
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidInput("Amount must be greater than 0")
        if amount > MAX_AMOUNT:
            raise InvalidInput("Amount exceeds u128")
        if not caller or not recipient:
            raise InvalidInput("Caller and recipient are required")
        for identity in (caller, recipient):
            if not self.ledger.is_valid_identity(identity):
                raise InvalidInput(f"Invalid ledger identity: {identity}")
        secret_hash = normalize_digest(secret_hash, "secret_hash")
        timeout_ns = timeout_to_ns(timeout_duration, timeout_unit)

        with self._lock:
            now = self.clock()
            end_time = now + timeout_ns
            if end_time > MAX_U64:
                raise InvalidInput("Timeout too large")

            lock_id = derive_lock_id(secret_hash, recipient, caller, amount, end_time, now)

            lock = Lock(
                id=lock_id,
                secret_hash=secret_hash,
                sender=caller,
                recipient=recipient,
                amount=amount,
                end_time=end_time,
                target_chain=target_chain or "",
                target_address=target_address or "",
                created_at=now,
            )
            self.locks.insert(lock)

            transfer = self.transfers.open(
                TransferKind.FUND, lock_id, caller, self.contract_id, amount, now
            )
            lock.funding_transfer_id = transfer.transfer_id
            self.locks.update(lock)

            log.info(f"Lock created: {lock_id[:16]}..., sender={caller}, "
                     f"recipient={recipient}, amount={amount}, end_time={end_time}")

            result = self._call_ledger(
                self.ledger.transfer_with_notification,
                caller, self.contract_id, amount, FUNDING_NOTE
            )
            self._apply_outcome(transfer, result)

        return lock_id

    def on_transfer_confirmed(self, lock_id: str, sender: str, recipient: str,
                              amount: int, success: bool = True):
        """
        Deposit outcome for a lock.

        On failure the lock is marked unusable and TransferFailed is raised;
        the record itself stays for audit. An outcome is accepted once: a
        lock whose deposit is already confirmed or failed raises AlreadySettled.
        """
        with self._lock:
            lock = self._require_lock(lock_id)
            if (lock.sender, lock.recipient, lock.amount) != (sender, recipient, amount):
                raise InvalidInput(f"Deposit details do not match lock {lock_id}")
            if lock.funding != FundingState.PENDING:
                raise AlreadySettled(f"Lock funding already {lock.funding.value}")

            if not success:
                lock.funding = FundingState.FAILED
                self.locks.update(lock)
                log.error(f"Token transfer failed for lock {lock_id[:16]}..., "
                          f"from: {sender}, amount: {amount}; lock is unusable")
                raise TransferFailed("Token transfer failed", lock.funding_transfer_id)

            lock.funding = FundingState.CONFIRMED
            self.locks.update(lock)

        log.info(f"Swap initiated with ID: {lock_id}, from: {sender}, "
                 f"to: {recipient}, amount: {amount}")

    def withdraw(self, caller: str, lock_id: str, preimage: str) -> bool:
        """Release the lock to its recipient by revealing the preimage."""
        with self._lock:
            lock = self._require_lock(lock_id)

            if caller != lock.recipient:
                raise Unauthorized("Not the recipient")
            self._require_open(lock)
            if hash_preimage(preimage) != lock.secret_hash:
                raise SecretMismatch("Secret hash does not match")

            lock.preimage = preimage
            lock.status = LockStatus.WITHDRAWN
            transfer = self.transfers.open(
                TransferKind.WITHDRAW, lock_id, self.contract_id,
                lock.recipient, lock.amount, self.clock()
            )
            lock.settlement_transfer_id = transfer.transfer_id
            self.locks.update(lock)

            log.info(f"Swap withdrawn with ID: {lock_id}, preimage: {preimage}, "
                     f"recipient: {lock.recipient}")

            result = self._call_ledger(
                self.ledger.transfer, self.contract_id, lock.recipient, lock.amount
            )
            self._apply_outcome(transfer, result)

        return True

    def refund(self, caller: str, lock_id: str) -> bool:
        """Return the lock to its sender once end_time has passed."""
        with self._lock:
            lock = self._require_lock(lock_id)

            if caller != lock.sender:
                raise Unauthorized("Not the sender")
            self._require_open(lock)
            if not lock.is_expired(self.clock()):
                raise TimelockNotExpired("Timelock not expired")

            lock.status = LockStatus.REFUNDED
            transfer = self.transfers.open(
                TransferKind.REFUND, lock_id, self.contract_id,
                lock.sender, lock.amount, self.clock()
            )
            lock.settlement_transfer_id = transfer.transfer_id
            self.locks.update(lock)

            log.info(f"Swap refunded with ID: {lock_id}, sender: {lock.sender}")

            result = self._call_ledger(
                self.ledger.transfer, self.contract_id, lock.sender, lock.amount
            )
            self._apply_outcome(transfer, result)

        return True

    def _require_lock(self, lock_id: str) -> Lock:
        lock = self.locks.get(lock_id)
        if lock is None:
            raise NotFound("Lock contract does not exist")
        return lock

    def _require_open(self, lock: Lock):
        if lock.status == LockStatus.WITHDRAWN:
            raise AlreadySettled("Already withdrawn")
        if lock.status == LockStatus.REFUNDED:
            raise AlreadySettled("Already refunded")
        if lock.funding != FundingState.CONFIRMED:
            raise LockNotFunded(f"Lock funding is {lock.funding.value}")

    # =========================================================================
    # Cross-Chain
    # =========================================================================

    def complete_swap(self, caller: str, source_chain: str, source_address: str,
                      destination: str, amount: int, preimage: str) -> bool:
        """Mint amount to destination on a relayer's attestation."""
        with self._lock:
            return self.cross_chain.complete_swap(
                caller, source_chain, source_address, destination, amount, preimage
            )

    def execute_cross_chain_call(self, caller: str, chain_id: str, contract_address: str,
                                 calldata: str, gas_limit: int = 0) -> CrossChainCall:
        with self._lock:
            return self.cross_chain.execute_cross_chain_call(
                caller, chain_id, contract_address, calldata, gas_limit
            )

    def _issue_mint(self, completion_id: str, destination: str, amount: int) -> str:
        transfer = self.transfers.open(
            TransferKind.MINT, completion_id, "", destination, amount, self.clock()
        )
        result = self._call_ledger(self.ledger.mint, destination, amount)
        self._apply_outcome(transfer, result)
        return transfer.transfer_id

    # =========================================================================
    # Ledger Outcomes
    # =========================================================================

    def _call_ledger(self, operation: Callable[..., LedgerResult], *args) -> LedgerResult:
        """Run a ledger operation; an exception becomes a failed result."""
        try:
            return operation(*args)
        except Exception as e:
            log.exception(f"Ledger {getattr(operation, '__name__', 'operation')} raised")
            return LedgerResult.failed(str(e) or type(e).__name__)

    def _apply_outcome(self, transfer: PendingTransfer, result: LedgerResult):
        """Record a ledger result against its transfer and react to it."""
        transfer.tx_hash = result.tx_hash or transfer.tx_hash
        if result.pending:
            self.transfers.save(transfer)
            log.info(f"{transfer.kind.value} transfer {transfer.transfer_id[:12]} "
                     f"pending: tx={result.tx_hash}")
            return

        transfer.state = TransferState.CONFIRMED if result.success else TransferState.FAILED
        transfer.error = None if result.success else (result.error or "unknown error")
        transfer.resolved_at = self.clock()
        self.transfers.save(transfer)

        if transfer.kind == TransferKind.FUND:
            lock = self._require_lock(transfer.reference)
            self.on_transfer_confirmed(
                lock.id, lock.sender, lock.recipient, lock.amount, result.success
            )
        elif not result.success:
            log.critical(f"SETTLEMENT FAILURE: {transfer.kind.value} of {transfer.amount} "
                         f"to {transfer.receiver} (ref {transfer.reference[:16]}...) failed "
                         f"after state change: {transfer.error}. "
                         f"Retry transfer {transfer.transfer_id}")
            raise TransferFailed(
                f"{transfer.kind.value} transfer failed: {transfer.error}",
                transfer.transfer_id,
            )
        else:
            log.info(f"{transfer.kind.value} transfer {transfer.transfer_id[:12]} confirmed")

    def resolve_transfer(self, caller: str, transfer_id: str, success: bool,
                         tx_hash: str = None, error: str = None) -> PendingTransfer:
        """
        Explicit completion message for a pending ledger operation.

        Only the token ledger or the contract itself may report outcomes.
        """
        if caller not in (self.token_id, self.contract_id):
            raise Unauthorized("Only the token ledger can resolve transfers")
        result = LedgerResult(success=success, tx_hash=tx_hash,
                              error=error if not success else None)
        return self.apply_ledger_outcome(transfer_id, result)

    def apply_ledger_outcome(self, transfer_id: str, result: LedgerResult) -> PendingTransfer:
        with self._lock:
            transfer = self.transfers.require(transfer_id)
            if transfer.state != TransferState.PENDING:
                raise AlreadySettled(f"Transfer already {transfer.state.value}")
            self._apply_outcome(transfer, result)
            return self.transfers.require(transfer_id)

    def retry_transfer(self, caller: str, transfer_id: str) -> PendingTransfer:
        """Re-issue a failed payout (withdraw, refund or mint). Owner only."""
        self.auth.assert_owner(caller)
        with self._lock:
            transfer = self.transfers.require(transfer_id)
            if transfer.state != TransferState.FAILED:
                raise InvalidInput(f"Transfer is {transfer.state.value}, not failed")
            if not transfer.is_payout:
                raise InvalidInput("Failed deposits cannot be retried")

            transfer.state = TransferState.PENDING
            transfer.error = None
            transfer.resolved_at = None
            transfer.attempts += 1
            self.transfers.save(transfer)

            log.info(f"Retrying {transfer.kind.value} transfer {transfer_id} "
                     f"(attempt {transfer.attempts})")

            if transfer.kind == TransferKind.MINT:
                result = self._call_ledger(self.ledger.mint, transfer.receiver, transfer.amount)
            else:
                result = self._call_ledger(
                    self.ledger.transfer, self.contract_id, transfer.receiver, transfer.amount
                )
            self._apply_outcome(transfer, result)
            return self.transfers.require(transfer_id)

    def pending_transfers(self) -> List[PendingTransfer]:
        return self.transfers.list(TransferState.PENDING)

    def failed_transfers(self) -> List[PendingTransfer]:
        return self.transfers.list(TransferState.FAILED)

    # =========================================================================
    # Relayers
    # =========================================================================

    def add_relayer(self, caller: str, identity: str):
        with self._lock:
            self.auth.add_relayer(caller, identity)

    def remove_relayer(self, caller: str, identity: str):
        with self._lock:
            self.auth.remove_relayer(caller, identity)

    def is_relayer(self, identity: str) -> bool:
        return self.auth.is_relayer(identity)

    # =========================================================================
    # Queries
    # =========================================================================

    def has_lock(self, lock_id: str) -> bool:
        return self.locks.contains(lock_id)

    def get_lock(self, lock_id: str) -> Optional[Dict[str, Any]]:
        """Lock view, or None if absent."""
        lock = self.locks.get(lock_id)
        if lock is None:
            return None
        view = lock.to_dict()
        view["withdrawn"] = lock.status == LockStatus.WITHDRAWN
        view["refunded"] = lock.status == LockStatus.REFUNDED
        return view

    def list_locks(self, status: Optional[LockStatus] = None) -> List[Lock]:
        return self.locks.list(status)

    def get_completion(self, completion_id: str) -> Optional[Completion]:
        return self.cross_chain.get_completion(completion_id)

    def stats(self) -> Dict[str, Any]:
        locks = self.locks.list()
        return {
            "locks_total": len(locks),
            "locks_open": sum(1 for l in locks if l.status == LockStatus.OPEN),
            "locks_withdrawn": sum(1 for l in locks if l.status == LockStatus.WITHDRAWN),
            "locks_refunded": sum(1 for l in locks if l.status == LockStatus.REFUNDED),
            "transfers_pending": len(self.pending_transfers()),
            "transfers_failed": len(self.failed_transfers()),
            "relayers": len(self.auth.relayers()),
        }
