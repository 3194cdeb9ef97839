"""
Lock lifecycle and transfer endpoints.

Caller identity is taken from the X-Caller-Id header; authenticating that
header is the deployment's job (gateway, mTLS, signed requests).
"""

import logging
from typing import Optional

from fastapi import APIRouter, Header, Query, Request
from pydantic import BaseModel, Field

from htlc_sdk.core import LockStatus, TimeUnit
from htlc_sdk.errors import InvalidInput, NotFound
from htlc_sdk.htlc.contract import HTLCContract

log = logging.getLogger(__name__)

router = APIRouter()


def get_contract(request: Request) -> HTLCContract:
    return request.app.state.contract


# =============================================================================
# MODELS
# =============================================================================

class InitiateSwapRequest(BaseModel):
    secret_hash: str = Field(..., description="SHA256 hashlock, 64 hex chars")
    recipient: str
    amount: int = Field(..., description="Token smallest units")
    timeout: int = Field(..., description="Duration until refund is allowed")
    timeout_unit: str = Field("hours", description="seconds, minutes or hours")
    target_chain: str = ""
    target_address: str = ""


class InitiateSwapResponse(BaseModel):
    lock_id: str
    funding: str


class WithdrawRequest(BaseModel):
    preimage: str


class ResolveTransferRequest(BaseModel):
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# LOCKS
# =============================================================================

@router.post("/api/locks", response_model=InitiateSwapResponse)
async def initiate_swap(req: InitiateSwapRequest, request: Request,
                        x_caller_id: str = Header(...)):
    """Lock tokens from the caller under a hashlock and timelock."""
    contract = get_contract(request)
    lock_id = contract.initiate_swap(
        caller=x_caller_id,
        secret_hash=req.secret_hash,
        recipient=req.recipient,
        amount=req.amount,
        timeout_duration=req.timeout,
        target_chain=req.target_chain,
        target_address=req.target_address,
        timeout_unit=TimeUnit.parse(req.timeout_unit),
    )
    lock = contract.get_lock(lock_id)
    return {"lock_id": lock_id, "funding": lock["funding"]}


@router.get("/api/locks")
async def list_locks(request: Request, status: Optional[str] = Query(None)):
    """List locks, optionally filtered by status (open, withdrawn, refunded)."""
    lock_status = None
    if status:
        try:
            lock_status = LockStatus(status)
        except ValueError:
            raise InvalidInput(f"Unknown status: {status}")

    locks = get_contract(request).list_locks(lock_status)
    return {"locks": [lock.to_dict() for lock in locks], "count": len(locks)}


@router.get("/api/locks/{lock_id}")
async def get_lock(lock_id: str, request: Request):
    lock = get_contract(request).get_lock(lock_id)
    if lock is None:
        raise NotFound("Lock contract does not exist")
    return lock


@router.get("/api/locks/{lock_id}/exists")
async def has_lock(lock_id: str, request: Request):
    return {"lock_id": lock_id, "exists": get_contract(request).has_lock(lock_id)}


@router.post("/api/locks/{lock_id}/withdraw")
async def withdraw(lock_id: str, req: WithdrawRequest, request: Request,
                   x_caller_id: str = Header(...)):
    """Recipient claims the lock by revealing the preimage."""
    contract = get_contract(request)
    success = contract.withdraw(x_caller_id, lock_id, req.preimage)
    return {"success": success, "lock": contract.get_lock(lock_id)}


@router.post("/api/locks/{lock_id}/refund")
async def refund(lock_id: str, request: Request, x_caller_id: str = Header(...)):
    """Sender reclaims the lock after its timelock expired."""
    contract = get_contract(request)
    success = contract.refund(x_caller_id, lock_id)
    return {"success": success, "lock": contract.get_lock(lock_id)}


# =============================================================================
# TRANSFERS
# =============================================================================

@router.get("/api/transfers")
async def list_transfers(request: Request, state: Optional[str] = Query(None)):
    contract = get_contract(request)
    if state == "pending":
        transfers = contract.pending_transfers()
    elif state == "failed":
        transfers = contract.failed_transfers()
    elif state is None:
        transfers = contract.transfers.list()
    else:
        raise InvalidInput(f"Unknown state: {state}")
    return {"transfers": [t.to_dict() for t in transfers], "count": len(transfers)}


@router.post("/api/transfers/{transfer_id}/resolve")
async def resolve_transfer(transfer_id: str, req: ResolveTransferRequest,
                           request: Request, x_caller_id: str = Header(...)):
    """Ledger reports the outcome of a pending transfer."""
    transfer = get_contract(request).resolve_transfer(
        x_caller_id, transfer_id, req.success, req.tx_hash, req.error
    )
    return transfer.to_dict()


@router.post("/api/transfers/{transfer_id}/retry")
async def retry_transfer(transfer_id: str, request: Request,
                         x_caller_id: str = Header(...)):
    """Owner re-issues a failed payout."""
    transfer = get_contract(request).retry_transfer(x_caller_id, transfer_id)
    return transfer.to_dict()
