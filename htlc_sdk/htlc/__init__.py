"""
HTLC state machine and its side tables.

- contract: lock lifecycle (initiate, withdraw, refund) and ledger outcomes
- transfers: requested ledger operations and their confirmation state
- cross_chain: relayer completions and cross-chain call intents
"""

from .contract import HTLCContract
from .transfers import TransferBook, PendingTransfer, TransferKind, TransferState
from .cross_chain import CrossChainHandler, Completion, CrossChainCall

__all__ = [
    "HTLCContract",
    "TransferBook",
    "PendingTransfer",
    "TransferKind",
    "TransferState",
    "CrossChainHandler",
    "Completion",
    "CrossChainCall",
]
