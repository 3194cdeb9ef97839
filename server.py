#!/usr/bin/env python3
"""
htlc SDK Server
Hash time-locked swaps of one fungible token, with relayer-attested
completion of swaps that originate on a foreign chain.

Endpoints:
  GET  /api/status                        - Health check + counters

  POST /api/locks                         - Initiate swap (lock tokens)
  GET  /api/locks                         - List locks
  GET  /api/locks/{id}                    - Lock details
  GET  /api/locks/{id}/exists             - Lock existence
  POST /api/locks/{id}/withdraw           - Recipient claims with preimage
  POST /api/locks/{id}/refund             - Sender reclaims after timeout

  GET  /api/transfers                     - Ledger operations (pending/failed)
  POST /api/transfers/{id}/resolve        - Ledger reports an outcome
  POST /api/transfers/{id}/retry          - Owner re-issues a failed payout

  GET  /api/relayers                      - Relayer set
  POST /api/relayers                      - Add relayer (owner)
  DELETE /api/relayers/{identity}         - Remove relayer (owner)

  POST /api/cross-chain/complete          - Relayer completion (mint)
  POST /api/cross-chain/execute           - Record EVM call intent

Callers identify themselves with the X-Caller-Id header.
"""

import time
import logging
from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from htlc_sdk import __version__
from htlc_sdk.config import HTLCConfig
from htlc_sdk.core import now_ns
from htlc_sdk.errors import (
    HTLCError, InvalidInput, DuplicateLock, NotFound, Unauthorized,
    AlreadySettled, SecretMismatch, TimelockNotExpired, TransferFailed,
    LockNotFunded, DuplicateCompletion,
)
from htlc_sdk.htlc.contract import HTLCContract
from htlc_sdk.ledger import TokenLedger, InMemoryLedger, EVMTokenLedger
from htlc_sdk.swap.watcher import SettlementWatcher, WatcherConfig
from routes import locks as lock_routes
from routes import relayers as relayer_routes

# =============================================================================
# LOGGING
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s'
)
log = logging.getLogger(__name__)

# =============================================================================
# ERROR MAPPING
# =============================================================================

ERROR_STATUS = {
    InvalidInput: 400,
    SecretMismatch: 400,
    Unauthorized: 403,
    NotFound: 404,
    DuplicateLock: 409,
    AlreadySettled: 409,
    DuplicateCompletion: 409,
    LockNotFunded: 409,
    TimelockNotExpired: 425,
    TransferFailed: 502,
}


def status_for(error: HTLCError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


# =============================================================================
# APP SETUP
# =============================================================================

def build_ledger(config: HTLCConfig) -> TokenLedger:
    """Ledger backend from config."""
    if config.ledger == "evm":
        ledger = EVMTokenLedger(
            token_address=config.evm_token_address,
            private_key=config.evm_private_key,
            rpc_url=config.evm_rpc_url,
            chain_id=config.evm_chain_id,
        )
        # Locked funds live on the HTLC's own account
        config.contract_id = ledger.address
        config.token_id = ledger.token_address
        log.info(f"EVM ledger: token={ledger.token_address}, htlc account={ledger.address}")
        return ledger

    log.info("In-memory ledger (development mode)")
    return InMemoryLedger(config.dev_balances)


def create_app(config: HTLCConfig = None, ledger: TokenLedger = None,
               clock: Callable[[], int] = now_ns) -> FastAPI:
    config = config or HTLCConfig.from_env()
    ledger = ledger or build_ledger(config)
    contract = HTLCContract.from_config(config, ledger, clock=clock)

    app = FastAPI(
        title="htlc SDK",
        description="Hash time-locked swaps with relayer-attested cross-chain completion",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.config = config
    app.state.contract = contract
    app.state.watcher = SettlementWatcher(
        contract, WatcherConfig(poll_interval=config.watch_interval)
    )
    app.state.started_at = int(time.time())

    @app.exception_handler(HTLCError)
    async def htlc_error_handler(request: Request, exc: HTLCError):
        status = status_for(exc)
        if status >= 500:
            log.error(f"{request.method} {request.url.path} -> {type(exc).__name__}: {exc}")
        body = {"error": type(exc).__name__, "detail": str(exc)}
        transfer_id = getattr(exc, "transfer_id", None)
        if transfer_id:
            body["transfer_id"] = transfer_id
        return JSONResponse(status_code=status, content=body)

    @app.get("/api/status")
    async def get_status():
        """Health check."""
        return {
            "status": "ok",
            "version": __version__,
            "timestamp": int(time.time()),
            "uptime": int(time.time()) - app.state.started_at,
            "contract_id": config.contract_id,
            "owner_id": config.owner_id,
            "ledger": config.ledger,
            "replay_protection": config.replay_protection,
            **contract.stats(),
        }

    app.include_router(lock_routes.router)
    app.include_router(relayer_routes.router)

    @app.on_event("startup")
    async def startup_event():
        pending = len(contract.pending_transfers())
        failed = len(contract.failed_transfers())
        if failed:
            log.critical(f"{failed} failed payout(s) awaiting retry, see /api/transfers?state=failed")
        log.info(f"HTLC {config.contract_id} ready: {pending} pending transfer(s)")
        app.state.watcher.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        app.state.watcher.stop()
        log.info("HTLC server stopped")

    return app


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    config = HTLCConfig.from_env()
    app = create_app(config)
    log.info(f"Starting htlc SDK on port {config.port}")
    log.info(f"Docs: http://0.0.0.0:{config.port}/docs")
    uvicorn.run(app, host="0.0.0.0", port=config.port)
