"""
Configuration for the HTLC service.

Values come from environment variables; every field has a development
default so the service runs with an in-memory ledger out of the box.
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Optional, List, Dict

log = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    value = os.environ.get(name, "")
    return [item.strip() for item in value.split(",") if item.strip()]


def _env_balances(name: str) -> Dict[str, int]:
    """Parse "alice=1000,bob=50" into a balance map."""
    balances = {}
    for item in _env_list(name):
        identity, _, amount = item.partition("=")
        balances[identity.strip()] = int(amount)
    return balances


@dataclass
class HTLCConfig:
    """HTLC service configuration."""
    contract_id: str = "htlc.local"     # Identity holding locked funds
    owner_id: str = "owner.local"       # May manage relayers and retry payouts
    token_id: str = "token.local"       # Ledger identity allowed to resolve transfers
    data_dir: Optional[str] = None      # None = memory only
    relayers: List[str] = field(default_factory=list)
    replay_protection: bool = True

    # Ledger backend: "memory" or "evm"
    ledger: str = "memory"
    dev_balances: Dict[str, int] = field(default_factory=dict)  # memory ledger seed
    evm_rpc_url: str = "https://sepolia.base.org"
    evm_chain_id: int = 84532
    evm_token_address: Optional[str] = None
    evm_private_key: Optional[str] = None

    # Settlement watcher poll interval (seconds)
    watch_interval: int = 5

    port: int = 8080

    @classmethod
    def from_env(cls) -> "HTLCConfig":
        defaults = cls()
        config = cls(
            contract_id=os.environ.get("HTLC_CONTRACT_ID", defaults.contract_id),
            owner_id=os.environ.get("HTLC_OWNER_ID", defaults.owner_id),
            token_id=os.environ.get("HTLC_TOKEN_ID", defaults.token_id),
            data_dir=os.environ.get("HTLC_DATA_DIR") or None,
            relayers=_env_list("HTLC_RELAYERS"),
            replay_protection=_env_bool("HTLC_REPLAY_PROTECTION", True),
            ledger=os.environ.get("HTLC_LEDGER", defaults.ledger).lower(),
            dev_balances=_env_balances("HTLC_DEV_BALANCES"),
            evm_rpc_url=os.environ.get("HTLC_EVM_RPC_URL", defaults.evm_rpc_url),
            evm_chain_id=int(os.environ.get("HTLC_EVM_CHAIN_ID", defaults.evm_chain_id)),
            evm_token_address=os.environ.get("HTLC_EVM_TOKEN_ADDRESS"),
            evm_private_key=os.environ.get("HTLC_EVM_PRIVATE_KEY"),
            watch_interval=int(os.environ.get("HTLC_WATCH_INTERVAL", defaults.watch_interval)),
            port=int(os.environ.get("PORT", defaults.port)),
        )
        config.validate()
        return config

    def validate(self):
        if self.ledger not in ("memory", "evm"):
            raise ValueError(f"Unknown ledger backend: {self.ledger}")
        if self.ledger == "evm" and not (self.evm_token_address and self.evm_private_key):
            raise ValueError("EVM ledger requires HTLC_EVM_TOKEN_ADDRESS and HTLC_EVM_PRIVATE_KEY")
        if not self.replay_protection:
            log.warning("Cross-chain replay protection is DISABLED: "
                        "repeated completions will mint again")
