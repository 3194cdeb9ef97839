"""
ERC-20 token ledger on an EVM chain.

The HTLC operates its own account: tokens locked in swaps sit on that
account. Deposits use transferFrom (sender must approve the HTLC account
first), payouts use transfer, completions use mint (HTLC account must hold
the minter role on the token).

Every operation is submitted without waiting; status() reads the receipt.
"""

import logging
from typing import Optional, Callable, Any

from web3 import Web3
from web3.exceptions import TransactionNotFound
from eth_account import Account

from .base import TokenLedger, LedgerResult

log = logging.getLogger(__name__)

# Base Sepolia RPC
RPC_URL = "https://sepolia.base.org"
CHAIN_ID = 84532

DEFAULT_GAS = 120000

# ERC20 ABI (minimal - only functions we use)
ERC20_ABI = [
    {
        "name": "transfer",
        "type": "function",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "transferFrom",
        "type": "function",
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "outputs": [{"name": "", "type": "bool"}]
    },
    {
        "name": "mint",
        "type": "function",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"}
        ],
        "outputs": []
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}]
    }
]


class EVMTokenLedger(TokenLedger):
    """
    ERC-20 ledger driven by the HTLC's own key.

    Identities are EVM addresses; the HTLC's contract_id should be the
    account address derived from private_key.
    """

    def __init__(self, token_address: str, private_key: str,
                 rpc_url: str = RPC_URL, chain_id: int = CHAIN_ID,
                 web3: Web3 = None):
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        self.token_address = Web3.to_checksum_address(token_address)
        self.account = Account.from_key(private_key)
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self._web3 = web3

    @property
    def web3(self) -> Web3:
        """Lazy-load web3 instance."""
        if self._web3 is None:
            self._web3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self._web3

    @property
    def address(self) -> str:
        return self.account.address

    def _contract(self):
        return self.web3.eth.contract(address=self.token_address, abi=ERC20_ABI)

    def is_valid_identity(self, identity: str) -> bool:
        return isinstance(identity, str) and Web3.is_address(identity)

    def _submit(self, build_fn: Callable[[Any], Any], label: str) -> LedgerResult:
        """
        Build, sign and broadcast a contract call; do not wait for the receipt.

        build_fn receives the token contract and returns the function call.
        """
        try:
            w3 = self.web3
            if not w3.is_connected():
                return LedgerResult.failed("Cannot connect to RPC")

            fn = build_fn(self._contract())
            nonce = w3.eth.get_transaction_count(self.account.address, 'pending')
            gas_price = int(w3.eth.gas_price * 1.1)

            tx = fn.build_transaction({
                'from': self.account.address,
                'nonce': nonce,
                'gas': DEFAULT_GAS,
                'gasPrice': gas_price,
                'chainId': self.chain_id
            })

            signed = self.account.sign_transaction(tx)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)

            log.info(f"{label} TX: {tx_hash.hex()}")
            return LedgerResult.submitted(tx_hash.hex())

        except Exception as e:
            log.exception(f"Failed to submit {label}")
            return LedgerResult.failed(str(e))

    def _invalid(self, *identities: str) -> Optional[LedgerResult]:
        for identity in identities:
            if not self.is_valid_identity(identity):
                log.warning(f"Ledger call rejected: {identity!r} is not an EVM address")
                return LedgerResult.failed(f"Invalid address: {identity}")
        return None

    def balance_of(self, identity: str) -> int:
        return self._contract().functions.balanceOf(
            Web3.to_checksum_address(identity)
        ).call()

    def transfer(self, sender: str, receiver: str, amount: int) -> LedgerResult:
        if amount <= 0:
            return LedgerResult.failed("The amount should be a positive number")
        rejected = self._invalid(sender, receiver)
        if rejected:
            return rejected

        to = Web3.to_checksum_address(receiver)
        if Web3.to_checksum_address(sender) == self.account.address:
            return self._submit(lambda c: c.functions.transfer(to, amount), "transfer")

        frm = Web3.to_checksum_address(sender)
        return self._submit(lambda c: c.functions.transferFrom(frm, to, amount), "transferFrom")

    def transfer_with_notification(self, sender: str, receiver: str,
                                   amount: int, note: str) -> LedgerResult:
        # ERC-20 has no receiver hook; the note is only logged and the HTLC
        # learns the outcome through status().
        log.info(f"Memo: {note}")
        return self.transfer(sender, receiver, amount)

    def mint(self, receiver: str, amount: int) -> LedgerResult:
        if amount <= 0:
            return LedgerResult.failed("The amount should be a positive number")
        rejected = self._invalid(receiver)
        if rejected:
            return rejected

        to = Web3.to_checksum_address(receiver)
        return self._submit(lambda c: c.functions.mint(to, amount), "mint")

    def status(self, tx_hash: str) -> Optional[LedgerResult]:
        try:
            receipt = self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

        if receipt['status'] != 1:
            return LedgerResult.failed("Transaction reverted", tx_hash=tx_hash)
        return LedgerResult.ok(tx_hash, block_number=receipt['blockNumber'])
