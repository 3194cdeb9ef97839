"""
HTTP client for the htlc server.

Used by senders, recipients and relayers that talk to a running HTLC
service rather than embedding HTLCContract. Server-side HTLC errors are
re-raised as the same htlc_sdk.errors classes.
"""

import logging
from typing import Optional, Dict, Any, List

import httpx

from . import errors
from .core import TimeUnit

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


def _error_class(name: str):
    cls = getattr(errors, name, None)
    if isinstance(cls, type) and issubclass(cls, errors.HTLCError):
        return cls
    return errors.HTLCError


class HTLCClient:
    """
    Thin client over the HTLC REST API.

    Args:
        base_url: Server URL, e.g. http://127.0.0.1:8080
        caller_id: Identity sent as X-Caller-Id
        http: Pre-built httpx.Client (tests pass a TestClient here)
    """

    def __init__(self, base_url: str = "http://127.0.0.1:8080", caller_id: str = "",
                 http: httpx.Client = None, timeout: float = DEFAULT_TIMEOUT):
        self.caller_id = caller_id
        self._owns_http = http is None
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self):
        if self._owns_http:
            self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def as_caller(self, caller_id: str) -> "HTLCClient":
        """Same connection, different identity."""
        clone = HTLCClient(caller_id=caller_id, http=self.http)
        return clone

    def _request(self, method: str, path: str, json: Dict = None,
                 params: Dict = None) -> Any:
        headers = {"X-Caller-Id": self.caller_id} if self.caller_id else {}
        try:
            response = self.http.request(method, path, json=json, params=params,
                                         headers=headers)
        except httpx.TimeoutException:
            raise RuntimeError(f"HTLC server timeout: {method} {path}")

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            name = body.get("error") if isinstance(body, dict) else None
            detail = body.get("detail") if isinstance(body, dict) else None
            if name:
                cls = _error_class(name)
                if cls is errors.TransferFailed:
                    raise cls(detail or name, body.get("transfer_id"))
                raise cls(detail or name)
            log.error(f"HTLC server error: {method} {path} -> {response.status_code}")
            response.raise_for_status()

        return response.json()

    # =========================================================================
    # Locks
    # =========================================================================

    def initiate_swap(self, secret_hash: str, recipient: str, amount: int,
                      timeout: int, timeout_unit: TimeUnit = TimeUnit.HOURS,
                      target_chain: str = "", target_address: str = "") -> str:
        """Returns the new lock id."""
        result = self._request("POST", "/api/locks", json={
            "secret_hash": secret_hash,
            "recipient": recipient,
            "amount": amount,
            "timeout": timeout,
            "timeout_unit": TimeUnit.parse(timeout_unit).name.lower(),
            "target_chain": target_chain,
            "target_address": target_address,
        })
        return result["lock_id"]

    def withdraw(self, lock_id: str, preimage: str) -> bool:
        result = self._request("POST", f"/api/locks/{lock_id}/withdraw",
                               json={"preimage": preimage})
        return result["success"]

    def refund(self, lock_id: str) -> bool:
        return self._request("POST", f"/api/locks/{lock_id}/refund")["success"]

    def get_lock(self, lock_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._request("GET", f"/api/locks/{lock_id}")
        except errors.NotFound:
            return None

    def has_lock(self, lock_id: str) -> bool:
        return self._request("GET", f"/api/locks/{lock_id}/exists")["exists"]

    def list_locks(self, status: str = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status else None
        return self._request("GET", "/api/locks", params=params)["locks"]

    # =========================================================================
    # Relayers & Cross-Chain
    # =========================================================================

    def relayers(self) -> List[str]:
        return self._request("GET", "/api/relayers")["relayers"]

    def is_relayer(self, identity: str) -> bool:
        return self._request("GET", f"/api/relayers/{identity}")["is_relayer"]

    def add_relayer(self, identity: str):
        self._request("POST", "/api/relayers", json={"identity": identity})

    def remove_relayer(self, identity: str):
        self._request("DELETE", f"/api/relayers/{identity}")

    def complete_swap(self, source_chain: str, source_address: str,
                      destination: str, amount: int, preimage: str) -> bool:
        result = self._request("POST", "/api/cross-chain/complete", json={
            "source_chain": source_chain,
            "source_address": source_address,
            "destination": destination,
            "amount": amount,
            "preimage": preimage,
        })
        return result["success"]

    def execute_cross_chain_call(self, chain_id: str, contract_address: str,
                                 calldata: str, gas_limit: int = 0) -> Dict[str, Any]:
        return self._request("POST", "/api/cross-chain/execute", json={
            "chain_id": chain_id,
            "contract_address": contract_address,
            "calldata": calldata,
            "gas_limit": gas_limit,
        })

    # =========================================================================
    # Transfers
    # =========================================================================

    def list_transfers(self, state: str = None) -> List[Dict[str, Any]]:
        params = {"state": state} if state else None
        return self._request("GET", "/api/transfers", params=params)["transfers"]

    def resolve_transfer(self, transfer_id: str, success: bool, tx_hash: str = None,
                         error: str = None) -> Dict[str, Any]:
        """Report a ledger outcome (caller must be the token ledger identity)."""
        return self._request("POST", f"/api/transfers/{transfer_id}/resolve", json={
            "success": success,
            "tx_hash": tx_hash,
            "error": error,
        })

    def retry_transfer(self, transfer_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/transfers/{transfer_id}/retry")

    def status(self) -> Dict[str, Any]:
        return self._request("GET", "/api/status")
