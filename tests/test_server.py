#!/usr/bin/env python3
"""
HTTP service tests: FastAPI app driven through HTLCClient.

The TestClient is used without its context manager so the settlement
watcher thread is never started.
"""

import sys
import os
import hashlib
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from fastapi.testclient import TestClient

from htlc_sdk.client import HTLCClient
from htlc_sdk.config import HTLCConfig
from htlc_sdk.errors import (
    NotFound, Unauthorized, SecretMismatch, TimelockNotExpired,
    DuplicateCompletion, InvalidInput, TransferFailed,
)
from htlc_sdk.ledger import InMemoryLedger, LedgerResult
from server import create_app, status_for

S3CR3T_HASH = hashlib.sha256(b"s3cr3t").hexdigest()
EVM_ADDRESS = "0x" + "cd" * 20


class FakeClock:

    def __init__(self):
        self.now = 1_700_000_000 * 10 ** 9

    def __call__(self) -> int:
        return self.now


class TestServer(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock()
        self.ledger = InMemoryLedger({"alice": 1000, "poor": 10})
        config = HTLCConfig(contract_id="htlc", owner_id="owner", token_id="token",
                            relayers=["relayer"])
        self.app = create_app(config, ledger=self.ledger, clock=self.clock)
        self.http = TestClient(self.app)
        self.alice = HTLCClient(caller_id="alice", http=self.http)
        self.bob = self.alice.as_caller("bob")
        self.owner = self.alice.as_caller("owner")
        self.relayer = self.alice.as_caller("relayer")

    def test_status(self):
        status = self.alice.status()
        self.assertEqual(status["status"], "ok")
        self.assertEqual(status["contract_id"], "htlc")
        self.assertTrue(status["replay_protection"])
        self.assertEqual(status["locks_total"], 0)

    def test_swap_over_http(self):
        lock_id = self.alice.initiate_swap(S3CR3T_HASH, "bob", 100, 1)
        self.assertTrue(self.bob.has_lock(lock_id))
        self.assertEqual(self.bob.get_lock(lock_id)["funding"], "confirmed")

        self.assertTrue(self.bob.withdraw(lock_id, "s3cr3t"))
        lock = self.bob.get_lock(lock_id)
        self.assertTrue(lock["withdrawn"])
        self.assertEqual(lock["preimage"], "s3cr3t")
        self.assertEqual(self.ledger.balance_of("bob"), 100)
        self.assertEqual(len(self.alice.list_locks("withdrawn")), 1)

    def test_error_mapping(self):
        lock_id = self.alice.initiate_swap(S3CR3T_HASH, "bob", 100, 1)

        with self.assertRaises(SecretMismatch):
            self.bob.withdraw(lock_id, "wrong")
        with self.assertRaises(Unauthorized):
            self.alice.withdraw(lock_id, "s3cr3t")
        with self.assertRaises(TimelockNotExpired):
            self.alice.refund(lock_id)

        response = self.http.post(f"/api/locks/{lock_id}/refund",
                                  headers={"X-Caller-Id": "alice"})
        self.assertEqual(response.status_code, 425)
        self.assertEqual(response.json()["error"], "TimelockNotExpired")

    def test_refund_after_timeout(self):
        lock_id = self.alice.initiate_swap(S3CR3T_HASH, "bob", 100, 30, timeout_unit="seconds")
        self.clock.now += 30 * 10 ** 9
        self.assertTrue(self.alice.refund(lock_id))
        self.assertTrue(self.alice.get_lock(lock_id)["refunded"])
        self.assertEqual(self.ledger.balance_of("alice"), 1000)

    def test_missing_caller_header(self):
        response = self.http.post("/api/locks", json={
            "secret_hash": S3CR3T_HASH, "recipient": "bob", "amount": 1, "timeout": 1,
        })
        self.assertEqual(response.status_code, 422)

    def test_unknown_lock(self):
        self.assertIsNone(self.alice.get_lock("0" * 64))
        response = self.http.get("/api/locks/" + "0" * 64)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "NotFound")
        with self.assertRaises(NotFound):
            self.bob.withdraw("0" * 64, "s3cr3t")

    def test_invalid_input(self):
        with self.assertRaises(InvalidInput):
            self.alice.initiate_swap("abc", "bob", 100, 1)
        with self.assertRaises(InvalidInput):
            self.alice.initiate_swap(S3CR3T_HASH, "bob", 0, 1)
        with self.assertRaises(InvalidInput):
            self.alice.list_locks("cancelled")

    def test_deposit_failure(self):
        with self.assertRaises(TransferFailed) as ctx:
            self.alice.as_caller("poor").initiate_swap(S3CR3T_HASH, "bob", 100, 1)
        self.assertIsNotNone(ctx.exception.transfer_id)

        [failed] = self.alice.list_transfers("failed")
        self.assertEqual(failed["kind"], "fund")
        self.assertEqual(failed["transfer_id"], ctx.exception.transfer_id)

    def test_payout_retry(self):
        lock_id = self.alice.initiate_swap(S3CR3T_HASH, "bob", 100, 1)
        with patch.object(self.ledger, "transfer", return_value=LedgerResult.failed("down")):
            with self.assertRaises(TransferFailed) as ctx:
                self.bob.withdraw(lock_id, "s3cr3t")

        with self.assertRaises(Unauthorized):
            self.bob.retry_transfer(ctx.exception.transfer_id)
        retried = self.owner.retry_transfer(ctx.exception.transfer_id)
        self.assertEqual(retried["state"], "confirmed")
        self.assertEqual(self.ledger.balance_of("bob"), 100)

    def test_resolve_requires_token_identity(self):
        lock_id = self.alice.initiate_swap(S3CR3T_HASH, "bob", 100, 1)
        transfer_id = self.alice.get_lock(lock_id)["funding_transfer_id"]
        with self.assertRaises(Unauthorized):
            self.alice.resolve_transfer(transfer_id, True)

    def test_relayer_management(self):
        self.assertTrue(self.alice.is_relayer("relayer"))
        with self.assertRaises(Unauthorized):
            self.alice.add_relayer("mallory")

        self.owner.add_relayer("r2")
        self.assertEqual(self.alice.relayers(), ["r2", "relayer"])
        self.owner.remove_relayer("r2")
        self.assertFalse(self.alice.is_relayer("r2"))

    def test_cross_chain(self):
        self.assertTrue(self.relayer.complete_swap("ethereum", "0xsrc", "dave", 70, "s3cr3t"))
        self.assertEqual(self.ledger.balance_of("dave"), 70)
        with self.assertRaises(DuplicateCompletion):
            self.relayer.complete_swap("ethereum", "0xsrc", "dave", 70, "s3cr3t")
        with self.assertRaises(Unauthorized):
            self.alice.complete_swap("ethereum", "0xsrc", "alice", 70, "x")

        call = self.relayer.execute_cross_chain_call("84532", EVM_ADDRESS, "0xdeadbeef", 50000)
        self.assertEqual(call["chain_id"], 84532)
        with self.assertRaises(InvalidInput):
            self.owner.execute_cross_chain_call("84532", "0x12", "0xdeadbeef")
        self.assertEqual(self.http.get("/api/cross-chain/calls").json()["count"], 1)

    def test_status_codes(self):
        self.assertEqual(status_for(SecretMismatch("x")), 400)
        self.assertEqual(status_for(TransferFailed("x")), 502)


if __name__ == "__main__":
    unittest.main(verbosity=2)
