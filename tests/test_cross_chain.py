#!/usr/bin/env python3
"""
Cross-chain completion and call intent tests.
"""

import sys
import os
import tempfile
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from htlc_sdk.auth import Authorization
from htlc_sdk.core import derive_completion_id
from htlc_sdk.errors import (
    InvalidInput, Unauthorized, DuplicateCompletion, TransferFailed,
)
from htlc_sdk.htlc.contract import HTLCContract
from htlc_sdk.htlc.cross_chain import parse_chain_id, validate_evm_address
from htlc_sdk.htlc.transfers import TransferKind, TransferState
from htlc_sdk.ledger import TokenLedger, LedgerResult, InMemoryLedger, EVMTokenLedger

EVM_ADDRESS = "0x" + "ab" * 20
COMPLETION = ("ethereum", "0xsource", "dave", 250, "s3cr3t")


def make_contract(ledger=None, data_dir=None, replay_protection=True) -> HTLCContract:
    ledger = ledger if ledger is not None else InMemoryLedger()
    auth = Authorization("owner", data_dir, relayers=["relayer"])
    return HTLCContract("htlc", "token", ledger, auth, data_dir=data_dir,
                        clock=lambda: 42, replay_protection=replay_protection)


class TestCompleteSwap(unittest.TestCase):

    def setUp(self):
        self.ledger = InMemoryLedger()
        self.htlc = make_contract(self.ledger)

    def test_relayer_mints(self):
        self.assertTrue(self.htlc.complete_swap("relayer", *COMPLETION))
        self.assertEqual(self.ledger.balance_of("dave"), 250)
        self.assertEqual(self.ledger.total_supply, 250)

        completion = self.htlc.get_completion(derive_completion_id(*COMPLETION))
        self.assertEqual(completion.relayer, "relayer")
        self.assertEqual(completion.amount, 250)
        self.assertEqual(completion.completed_at, 42)

        [mint] = self.htlc.transfers.list()
        self.assertEqual(mint.kind, TransferKind.MINT)
        self.assertEqual(mint.state, TransferState.CONFIRMED)
        self.assertEqual(completion.transfer_id, mint.transfer_id)

    def test_non_relayer_rejected(self):
        for caller in ("dave", "owner"):
            with self.assertRaises(Unauthorized):
                self.htlc.complete_swap(caller, *COMPLETION)
        self.assertEqual(self.ledger.history, [])
        self.assertIsNone(self.htlc.get_completion(derive_completion_id(*COMPLETION)))

    def test_removed_relayer_rejected(self):
        self.htlc.remove_relayer("owner", "relayer")
        with self.assertRaises(Unauthorized):
            self.htlc.complete_swap("relayer", *COMPLETION)

    def test_invalid_amount(self):
        with self.assertRaises(InvalidInput):
            self.htlc.complete_swap("relayer", "ethereum", "0xsource", "dave", 0, "s3cr3t")
        self.assertEqual(self.ledger.history, [])

    def test_replay_rejected(self):
        self.htlc.complete_swap("relayer", *COMPLETION)
        with self.assertRaises(DuplicateCompletion):
            self.htlc.complete_swap("relayer", *COMPLETION)
        self.assertEqual(self.ledger.balance_of("dave"), 250)

    def test_different_preimage_is_new_completion(self):
        self.htlc.complete_swap("relayer", *COMPLETION)
        self.htlc.complete_swap("relayer", "ethereum", "0xsource", "dave", 250, "other")
        self.assertEqual(self.ledger.balance_of("dave"), 500)

    def test_replay_allowed_when_protection_off(self):
        htlc = make_contract(self.ledger, replay_protection=False)
        htlc.complete_swap("relayer", *COMPLETION)
        with self.assertLogs("htlc_sdk.htlc.cross_chain", level="WARNING"):
            htlc.complete_swap("relayer", *COMPLETION)

        self.assertEqual(self.ledger.balance_of("dave"), 500)
        self.assertEqual(htlc.get_completion(derive_completion_id(*COMPLETION)).count, 2)

    def test_consumed_set_survives_restart(self):
        with tempfile.TemporaryDirectory() as data_dir:
            make_contract(self.ledger, data_dir).complete_swap("relayer", *COMPLETION)
            with self.assertRaises(DuplicateCompletion):
                make_contract(self.ledger, data_dir).complete_swap("relayer", *COMPLETION)
        self.assertEqual(self.ledger.balance_of("dave"), 250)

    def test_failed_mint_stays_consumed_and_retries(self):
        ledger = MagicMock(spec=TokenLedger)
        ledger.mint.return_value = LedgerResult.failed("minter role missing")
        htlc = make_contract(ledger)

        with self.assertRaises(TransferFailed) as ctx:
            htlc.complete_swap("relayer", *COMPLETION)

        completion = htlc.get_completion(derive_completion_id(*COMPLETION))
        self.assertEqual(completion.transfer_id, ctx.exception.transfer_id)
        with self.assertRaises(DuplicateCompletion):
            htlc.complete_swap("relayer", *COMPLETION)

        ledger.mint.return_value = LedgerResult.ok("0xmint")
        retried = htlc.retry_transfer("owner", ctx.exception.transfer_id)
        self.assertEqual(retried.state, TransferState.CONFIRMED)
        ledger.mint.assert_called_with("dave", 250)
        self.assertEqual(ledger.mint.call_count, 2)

    def test_raising_mint_stays_consumed_and_retries(self):
        ledger = MagicMock(spec=TokenLedger)
        ledger.mint.side_effect = ConnectionError("rpc unreachable")
        htlc = make_contract(ledger)

        with self.assertRaises(TransferFailed) as ctx:
            htlc.complete_swap("relayer", *COMPLETION)
        self.assertEqual(htlc.pending_transfers(), [])
        [failed] = htlc.failed_transfers()
        self.assertEqual(failed.error, "rpc unreachable")
        with self.assertRaises(DuplicateCompletion):
            htlc.complete_swap("relayer", *COMPLETION)

        ledger.mint.side_effect = None
        ledger.mint.return_value = LedgerResult.ok("0xmint")
        retried = htlc.retry_transfer("owner", ctx.exception.transfer_id)
        self.assertEqual(retried.state, TransferState.CONFIRMED)

    def test_destination_ledger_cannot_hold(self):
        ledger = EVMTokenLedger("0x" + "22" * 20, "0x" + "11" * 32, web3=MagicMock())
        htlc = make_contract(ledger)

        with self.assertRaises(InvalidInput):
            htlc.complete_swap("relayer", "ethereum", "0xsource", "bob.near", 250, "s3cr3t")

        completion_id = derive_completion_id("ethereum", "0xsource", "bob.near", 250, "s3cr3t")
        self.assertIsNone(htlc.get_completion(completion_id))
        self.assertEqual(htlc.transfers.list(), [])
        ledger.web3.eth.send_raw_transaction.assert_not_called()


class TestCrossChainCall(unittest.TestCase):

    def setUp(self):
        self.htlc = make_contract()

    def test_relayer_and_owner_allowed(self):
        call = self.htlc.execute_cross_chain_call("relayer", "84532", EVM_ADDRESS, "0xdeadbeef", 100000)
        self.assertEqual(call.chain_id, 84532)
        self.assertEqual(call.caller, "relayer")
        self.htlc.execute_cross_chain_call("owner", "1", EVM_ADDRESS, "0x01")
        self.assertEqual(len(self.htlc.cross_chain.list_calls()), 2)

    def test_other_callers_rejected(self):
        with self.assertRaises(Unauthorized):
            self.htlc.execute_cross_chain_call("dave", "1", EVM_ADDRESS, "0x01")
        self.assertEqual(self.htlc.cross_chain.list_calls(), [])

    def test_validation(self):
        bad = [
            ("abc", EVM_ADDRESS, "0x01"),
            ("-1", EVM_ADDRESS, "0x01"),
            (str(2 ** 64), EVM_ADDRESS, "0x01"),
            ("1", "0x1234", "0x01"),
            ("1", "ab" * 21, "0x01"),
            ("1", EVM_ADDRESS, ""),
        ]
        for chain_id, address, calldata in bad:
            with self.assertRaises(InvalidInput):
                self.htlc.execute_cross_chain_call("relayer", chain_id, address, calldata)
        self.assertEqual(self.htlc.cross_chain.list_calls(), [])

    def test_parsers(self):
        self.assertEqual(parse_chain_id(str(2 ** 64 - 1)), 2 ** 64 - 1)
        self.assertEqual(validate_evm_address("0x" + "AbCdEf" * 6 + "0123"), "0x" + "AbCdEf" * 6 + "0123")


if __name__ == "__main__":
    unittest.main(verbosity=2)
