"""
Tests for RetentionPruner.
"""

import threading
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from feed_collector.exceptions import StoreError
from feed_collector.kv_store import KVStore
from feed_collector.models import Item, encode_record
from feed_collector.retention import RetentionPruner
from feed_collector.storage_keys import build_key

NOW = datetime(2024, 2, 1, 12, 0, tzinfo=timezone.utc)


class TestRetentionPruner(unittest.TestCase):

    def setUp(self):
        self.store = KVStore(":memory:")
        self.pruner = RetentionPruner(self.store, timedelta(days=30))

    def tearDown(self):
        self.store.close()

    def add(self, title, published):
        item = Item("https://a.example/feed", title, "Feed A", f"https://a.example/{title}", "", published)
        self.store.set(build_key(item), encode_record(item))
        return build_key(item)

    def test_deletes_only_old_records(self):
        old = self.add("old", NOW - timedelta(days=31))
        recent = self.add("recent", NOW - timedelta(days=1))

        result = self.pruner.prune(now=NOW)

        self.assertEqual(result.scanned, 2)
        self.assertEqual(result.deleted, 1)
        self.assertEqual(result.kept, 1)
        self.assertIsNone(self.store.get(old))
        self.assertIsNotNone(self.store.get(recent))

    def test_boundary_is_kept(self):
        self.add("edge", NOW - timedelta(days=30))
        self.assertEqual(self.pruner.prune(now=NOW).deleted, 0)

    def test_second_pass_deletes_nothing(self):
        self.add("old", NOW - timedelta(days=40))
        self.add("recent", NOW)

        self.pruner.prune(now=NOW)
        result = self.pruner.prune(now=NOW)

        self.assertEqual(result.deleted, 0)
        self.assertEqual(len(self.store), 1)

    def test_undecodable_record_is_kept(self):
        self.store.set(b"v3|broken", b"not json")
        self.add("old", NOW - timedelta(days=40))

        result = self.pruner.prune(now=NOW)

        self.assertEqual(result.errors, 1)
        self.assertEqual(result.deleted, 1)
        self.assertEqual(self.store.get(b"v3|broken"), b"not json")

    def test_delete_failure_counted_and_scan_continues(self):
        self.add("a", NOW - timedelta(days=40))
        self.add("b", NOW - timedelta(days=40))

        with patch.object(self.store, 'delete', side_effect=[StoreError("locked"), None]):
            result = self.pruner.prune(now=NOW)

        self.assertEqual(result.errors, 1)
        self.assertEqual(result.deleted, 1)

    def test_empty_store(self):
        result = self.pruner.prune(now=NOW)
        self.assertEqual((result.scanned, result.deleted), (0, 0))

    def test_rejects_non_positive_window(self):
        with self.assertRaises(ValueError):
            RetentionPruner(self.store, timedelta(0))

    def test_waits_for_write_lock(self):
        self.add("old", NOW - timedelta(days=40))
        finished = threading.Event()

        def prune():
            self.pruner.prune(now=NOW)
            finished.set()

        with self.store.write_lock:
            thread = threading.Thread(target=prune)
            thread.start()
            self.assertFalse(finished.wait(0.2))
            self.assertEqual(len(self.store), 1)

        thread.join(timeout=5)
        self.assertTrue(finished.is_set())
        self.assertEqual(len(self.store), 0)


if __name__ == '__main__':
    unittest.main()
