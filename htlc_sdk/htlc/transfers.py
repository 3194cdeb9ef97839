"""
Pending-transfer side table.

Records every ledger operation the HTLC requests, from "requested" to
"confirmed" or "failed". A failed payout here is a settled lock whose funds
never moved; it stays visible until an operator retries it.
"""

import uuid
import logging
from enum import Enum
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List

from ..errors import NotFound
from ..storage import JsonTable, table_path

log = logging.getLogger(__name__)


class TransferKind(Enum):
    FUND = "fund"           # sender -> HTLC at initiate_swap
    WITHDRAW = "withdraw"   # HTLC -> recipient
    REFUND = "refund"       # HTLC -> sender
    MINT = "mint"           # cross-chain completion


class TransferState(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class PendingTransfer:
    """One requested ledger operation and its outcome."""
    transfer_id: str
    kind: TransferKind
    reference: str          # lock id or completion id
    sender: str             # "" for mints
    receiver: str
    amount: int
    state: TransferState = TransferState.PENDING
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    created_at: int = 0
    resolved_at: Optional[int] = None
    attempts: int = 1

    @property
    def is_payout(self) -> bool:
        return self.kind in (TransferKind.WITHDRAW, TransferKind.REFUND, TransferKind.MINT)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingTransfer":
        data = dict(data)
        data["kind"] = TransferKind(data["kind"])
        data["state"] = TransferState(data["state"])
        return cls(**data)


class TransferBook:
    """Durable table of PendingTransfer records."""

    def __init__(self, data_dir: Optional[str] = None):
        self._table = JsonTable(table_path(data_dir, "transfers"), name="transfer")

    def open(self, kind: TransferKind, reference: str, sender: str,
             receiver: str, amount: int, now: int) -> PendingTransfer:
        transfer = PendingTransfer(
            transfer_id=uuid.uuid4().hex,
            kind=kind,
            reference=reference,
            sender=sender,
            receiver=receiver,
            amount=amount,
            created_at=now,
        )
        self.save(transfer)
        return transfer

    def save(self, transfer: PendingTransfer):
        self._table.put(transfer.transfer_id, transfer.to_dict())

    def get(self, transfer_id: str) -> Optional[PendingTransfer]:
        data = self._table.get(transfer_id)
        if data is None:
            return None
        return PendingTransfer.from_dict(data)

    def require(self, transfer_id: str) -> PendingTransfer:
        transfer = self.get(transfer_id)
        if transfer is None:
            raise NotFound(f"Transfer does not exist: {transfer_id}")
        return transfer

    def list(self, state: Optional[TransferState] = None) -> List[PendingTransfer]:
        transfers = [PendingTransfer.from_dict(d) for _, d in self._table.items()]
        if state is not None:
            transfers = [t for t in transfers if t.state == state]
        return sorted(transfers, key=lambda t: t.created_at)
