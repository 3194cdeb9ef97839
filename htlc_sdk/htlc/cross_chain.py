"""
Cross-chain completion and call intents.

A relayer attests that a swap completed on a foreign chain and the HTLC
mints the matching amount here. Nothing about the foreign event is verified
on this side: trust rests entirely on who is in the relayer set.

Completion ids are recorded in a consumed set before minting so the same
attestation cannot mint twice. Replay protection can be switched off to
allow repeated mints for the same attestation.
"""

import re
import uuid
import logging
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any, List, Callable

from ..core import derive_completion_id, MAX_AMOUNT
from ..auth import Authorization
from ..errors import Unauthorized, InvalidInput, DuplicateCompletion, TransferFailed
from ..storage import JsonTable, table_path

log = logging.getLogger(__name__)

EVM_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
CHAIN_ID_RE = re.compile(r"^[0-9]+$")
MAX_CHAIN_ID = 2 ** 64 - 1


@dataclass
class Completion:
    """Audit record for one relayer-attested completion."""
    completion_id: str
    source_chain: str
    source_address: str
    destination: str
    amount: int
    relayer: str
    completed_at: int
    transfer_id: Optional[str] = None
    count: int = 1          # >1 only when replay protection is off

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CrossChainCall:
    """Recorded intent to execute a call on an EVM chain."""
    call_id: str
    chain_id: int
    contract_address: str
    calldata: str
    gas_limit: int
    caller: str
    requested_at: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_chain_id(chain_id: str) -> int:
    """Decimal chain id string -> int. Raises InvalidInput."""
    text = str(chain_id).strip()
    if not CHAIN_ID_RE.match(text):
        raise InvalidInput("Invalid EVM chain ID format")
    value = int(text)
    if value > MAX_CHAIN_ID:
        raise InvalidInput("Invalid EVM chain ID format")
    return value


def validate_evm_address(address: str) -> str:
    if not isinstance(address, str) or not EVM_ADDRESS_RE.match(address):
        raise InvalidInput("Invalid EVM contract address format")
    return address


class CrossChainHandler:
    """
    Processes relayer completions and records cross-chain call intents.

    Minting is delegated to issue_mint(completion_id, destination, amount),
    which returns the transfer id of the requested ledger operation.
    is_valid_destination rejects destinations the ledger cannot credit.
    """

    def __init__(self, auth: Authorization, issue_mint: Callable[[str, str, int], str],
                 clock: Callable[[], int], data_dir: Optional[str] = None,
                 replay_protection: bool = True,
                 is_valid_destination: Callable[[str], bool] = bool):
        self.auth = auth
        self.issue_mint = issue_mint
        self.is_valid_destination = is_valid_destination
        self.clock = clock
        self.replay_protection = replay_protection
        self._completions = JsonTable(table_path(data_dir, "completions"), name="completion")
        self._calls = JsonTable(table_path(data_dir, "calls"), name="cross-chain call")

    def complete_swap(self, caller: str, source_chain: str, source_address: str,
                      destination: str, amount: int, preimage: str) -> bool:
        if not self.auth.is_relayer(caller):
            raise Unauthorized("Not an authorized relayer")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidInput("Amount must be greater than 0")
        if amount > MAX_AMOUNT:
            raise InvalidInput("Amount exceeds u128")
        if not destination:
            raise InvalidInput("Destination is required")
        if not self.is_valid_destination(destination):
            raise InvalidInput(f"Invalid destination: {destination}")

        completion_id = derive_completion_id(
            source_chain, source_address, destination, amount, preimage
        )

        existing = self._completions.get(completion_id)
        if existing is not None:
            if self.replay_protection:
                raise DuplicateCompletion(f"Completion already processed: {completion_id}")
            log.warning(f"Replaying completion {completion_id[:16]}... "
                        f"(replay protection disabled, minting again)")

        record = Completion(
            completion_id=completion_id,
            source_chain=source_chain,
            source_address=source_address,
            destination=destination,
            amount=amount,
            relayer=caller,
            completed_at=self.clock(),
            count=(existing["count"] + 1) if existing else 1,
        )
        # Consume the id before minting
        self._completions.put(completion_id, record.to_dict())

        try:
            record.transfer_id = self.issue_mint(completion_id, destination, amount)
        except TransferFailed as e:
            # Stays consumed; the failed mint is retried from the transfer book
            record.transfer_id = e.transfer_id
            raise
        finally:
            self._completions.put(completion_id, record.to_dict())

        log.info(f"Cross-chain swap completed from {source_chain}, "
                 f"source_address: {source_address}, to: {destination}, amount: {amount}, "
                 f"id: {completion_id[:16]}...")
        return True

    def get_completion(self, completion_id: str) -> Optional[Completion]:
        data = self._completions.get(completion_id)
        if data is None:
            return None
        return Completion(**data)

    def execute_cross_chain_call(self, caller: str, chain_id: str, contract_address: str,
                                 calldata: str, gas_limit: int = 0) -> CrossChainCall:
        """
        Record intent to execute calldata on an EVM chain.

        Relayers or owner only. Nothing is executed here; a bridge process
        consumes the recorded intents.
        """
        if not (self.auth.is_relayer(caller) or self.auth.is_owner(caller)):
            raise Unauthorized("Only relayers or owner can execute cross-chain operations")

        parsed_chain_id = parse_chain_id(chain_id)
        validate_evm_address(contract_address)
        if not calldata:
            raise InvalidInput("Calldata cannot be empty")
        if isinstance(gas_limit, bool) or not isinstance(gas_limit, int) or gas_limit < 0:
            raise InvalidInput("Gas limit must be a non-negative integer")

        call = CrossChainCall(
            call_id=uuid.uuid4().hex,
            chain_id=parsed_chain_id,
            contract_address=contract_address,
            calldata=calldata,
            gas_limit=gas_limit,
            caller=caller,
            requested_at=self.clock(),
        )
        self._calls.put(call.call_id, call.to_dict())

        log.info(f"Cross-chain call recorded: chain {parsed_chain_id}, "
                 f"contract: {contract_address}, gas: {gas_limit}, "
                 f"calldata length: {len(calldata)}")
        return call

    def list_calls(self) -> List[CrossChainCall]:
        calls = [CrossChainCall(**data) for _, data in self._calls.items()]
        return sorted(calls, key=lambda c: c.requested_at)
