"""
Relayer management and cross-chain endpoints.
"""

import logging

from fastapi import APIRouter, Header, Request
from pydantic import BaseModel, Field

from htlc_sdk.errors import NotFound

from .locks import get_contract

log = logging.getLogger(__name__)

router = APIRouter()


class RelayerRequest(BaseModel):
    identity: str


class CompleteSwapRequest(BaseModel):
    source_chain: str
    source_address: str
    destination: str
    amount: int
    preimage: str


class CrossChainCallRequest(BaseModel):
    chain_id: str = Field(..., description="Decimal EVM chain id")
    contract_address: str = Field(..., description="0x-prefixed 20-byte address")
    calldata: str
    gas_limit: int = 0


# =============================================================================
# RELAYERS
# =============================================================================

@router.get("/api/relayers")
async def list_relayers(request: Request):
    return {"relayers": get_contract(request).auth.relayers()}


@router.get("/api/relayers/{identity}")
async def is_relayer(identity: str, request: Request):
    return {"identity": identity, "is_relayer": get_contract(request).is_relayer(identity)}


@router.post("/api/relayers")
async def add_relayer(req: RelayerRequest, request: Request,
                      x_caller_id: str = Header(...)):
    get_contract(request).add_relayer(x_caller_id, req.identity)
    return {"success": True, "identity": req.identity}


@router.delete("/api/relayers/{identity}")
async def remove_relayer(identity: str, request: Request,
                         x_caller_id: str = Header(...)):
    get_contract(request).remove_relayer(x_caller_id, identity)
    return {"success": True, "identity": identity}


# =============================================================================
# CROSS-CHAIN
# =============================================================================

@router.post("/api/cross-chain/complete")
async def complete_swap(req: CompleteSwapRequest, request: Request,
                        x_caller_id: str = Header(...)):
    """Relayer attests a foreign-chain completion; tokens are minted here."""
    success = get_contract(request).complete_swap(
        x_caller_id, req.source_chain, req.source_address,
        req.destination, req.amount, req.preimage,
    )
    return {"success": success}


@router.get("/api/cross-chain/completions/{completion_id}")
async def get_completion(completion_id: str, request: Request):
    completion = get_contract(request).get_completion(completion_id)
    if completion is None:
        raise NotFound("Completion not found")
    return completion.to_dict()


@router.post("/api/cross-chain/execute")
async def execute_cross_chain_call(req: CrossChainCallRequest, request: Request,
                                   x_caller_id: str = Header(...)):
    """Record intent to execute calldata on an EVM chain."""
    call = get_contract(request).execute_cross_chain_call(
        x_caller_id, req.chain_id, req.contract_address, req.calldata, req.gas_limit
    )
    return call.to_dict()


@router.get("/api/cross-chain/calls")
async def list_cross_chain_calls(request: Request):
    calls = get_contract(request).cross_chain.list_calls()
    return {"calls": [c.to_dict() for c in calls], "count": len(calls)}
