#!/usr/bin/env python3
"""
Storage, lock registry and authorization tests.
"""

import sys
import os
import json
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from htlc_sdk.core import Lock, LockStatus
from htlc_sdk.storage import JsonTable, table_path
from htlc_sdk.registry import LockRegistry
from htlc_sdk.auth import Authorization
from htlc_sdk.errors import DuplicateLock, NotFound, Unauthorized, InvalidInput


def make_lock(lock_id="a" * 64, created_at=0) -> Lock:
    return Lock(id=lock_id, secret_hash="b" * 64, sender="alice",
                recipient="bob", amount=100, end_time=10, created_at=created_at)


class TestJsonTable(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.path = table_path(self.tmp.name, "things")

    def tearDown(self):
        self.tmp.cleanup()

    def test_memory_only(self):
        self.assertIsNone(table_path(None, "things"))
        table = JsonTable()
        table.put("k", {"v": 1})
        self.assertEqual(table.get("k"), {"v": 1})
        self.assertEqual(len(table), 1)

    def test_write_through(self):
        table = JsonTable(self.path)
        table.put("k", {"v": 1})

        with open(self.path) as f:
            self.assertEqual(json.load(f), {"k": {"v": 1}})
        self.assertFalse(os.path.exists(self.path + ".tmp"))

        reloaded = JsonTable(self.path)
        self.assertEqual(reloaded.get("k"), {"v": 1})

    def test_values_are_copies(self):
        table = JsonTable()
        value = {"v": [1]}
        table.put("k", value)
        value["v"].append(2)
        table.get("k")["v"].append(3)
        self.assertEqual(table.get("k"), {"v": [1]})

    def test_failed_write_leaves_table_unchanged(self):
        table = JsonTable(self.path)
        table.put("k", 1)

        with patch("htlc_sdk.storage.os.replace", side_effect=OSError("disk full")):
            with self.assertRaises(OSError):
                table.put("k", 2)
            with self.assertRaises(OSError):
                table.put("other", 3)

        self.assertEqual(table.get("k"), 1)
        self.assertFalse(table.contains("other"))
        self.assertEqual(len(table), 1)
        reloaded = JsonTable(self.path)
        self.assertEqual(reloaded.get("k"), 1)
        self.assertFalse(reloaded.contains("other"))


class TestLockRegistry(unittest.TestCase):

    def test_insert_get(self):
        registry = LockRegistry()
        lock = make_lock()
        registry.insert(lock)
        self.assertTrue(registry.contains(lock.id))
        self.assertEqual(registry.get(lock.id), lock)
        self.assertIsNone(registry.get("c" * 64))

    def test_duplicate(self):
        registry = LockRegistry()
        registry.insert(make_lock())
        with self.assertRaises(DuplicateLock):
            registry.insert(make_lock())

    def test_update_missing(self):
        with self.assertRaises(NotFound):
            LockRegistry().update(make_lock())

    def test_returned_lock_is_detached(self):
        registry = LockRegistry()
        registry.insert(make_lock())
        lock = registry.get("a" * 64)
        lock.status = LockStatus.WITHDRAWN
        self.assertEqual(registry.get("a" * 64).status, LockStatus.OPEN)

    def test_list_sorted_and_filtered(self):
        registry = LockRegistry()
        second = make_lock("2" * 64, created_at=2)
        first = make_lock("1" * 64, created_at=1)
        registry.insert(second)
        registry.insert(first)
        second.status = LockStatus.REFUNDED
        registry.update(second)

        self.assertEqual([l.id for l in registry.list()], [first.id, second.id])
        self.assertEqual([l.id for l in registry.list(LockStatus.OPEN)], [first.id])
        self.assertEqual(len(registry), 2)

    def test_persistence(self):
        with tempfile.TemporaryDirectory() as data_dir:
            LockRegistry(data_dir).insert(make_lock())
            self.assertEqual(LockRegistry(data_dir).get("a" * 64).amount, 100)


class TestAuthorization(unittest.TestCase):

    def test_owner_manages_relayers(self):
        auth = Authorization("owner")
        auth.add_relayer("owner", "relayer")
        self.assertTrue(auth.is_relayer("relayer"))
        self.assertEqual(auth.relayers(), ["relayer"])

        # Idempotent both ways
        auth.add_relayer("owner", "relayer")
        auth.remove_relayer("owner", "relayer")
        auth.remove_relayer("owner", "relayer")
        self.assertFalse(auth.is_relayer("relayer"))

    def test_non_owner_rejected(self):
        auth = Authorization("owner", relayers=["relayer"])
        with self.assertRaises(Unauthorized):
            auth.add_relayer("relayer", "mallory")
        with self.assertRaises(Unauthorized):
            auth.remove_relayer("mallory", "relayer")
        self.assertFalse(auth.is_relayer("mallory"))
        self.assertTrue(auth.is_relayer("relayer"))

    def test_owner_required(self):
        with self.assertRaises(InvalidInput):
            Authorization("")

    def test_owner_is_not_implicitly_relayer(self):
        auth = Authorization("owner")
        self.assertTrue(auth.is_owner("owner"))
        self.assertFalse(auth.is_relayer("owner"))

    def test_persistence_and_bootstrap(self):
        with tempfile.TemporaryDirectory() as data_dir:
            auth = Authorization("owner", data_dir, relayers=["r1"])
            auth.add_relayer("owner", "r2")
            auth.remove_relayer("owner", "r1")

            # Bootstrap does not re-add what the owner already changed
            reloaded = Authorization("owner", data_dir, relayers=["r1"])
            self.assertEqual(reloaded.relayers(), ["r2"])


if __name__ == "__main__":
    unittest.main(verbosity=2)
