"""
Tests for the ingestion pipeline: fan-out, fan-in, dedup, enrichment and commit.
"""

import queue
import random
import threading
import time
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

from feed_collector.digest import load_recent_items
from feed_collector.exceptions import EnrichmentTimeoutError, FetchError, StoreError, SubscriptionError
from feed_collector.fetch_worker import DONE, ITEM, WorkerReport
from feed_collector.ingestion import IngestionCoordinator, ingest_feeds
from feed_collector.kv_store import KVStore
from feed_collector.models import FeedSource, Item, ParsedFeed, RawEntry, decode_record
from feed_collector.retention import RetentionPruner

NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def at(hour, minute=0, day=15):
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


class FakeFetcher:
    """Serves canned feeds per URL; an exception value is raised instead."""

    def __init__(self, feeds, jitter=False):
        self.feeds = feeds
        self.jitter = jitter
        self.calls = []
        self._lock = threading.Lock()

    def fetch_feed(self, url):
        with self._lock:
            self.calls.append(url)
        if self.jitter:
            time.sleep(random.uniform(0, 0.01))
        result = self.feeds[url]
        if isinstance(result, Exception):
            raise result
        return result


class TestIngestFeeds(unittest.TestCase):

    def setUp(self):
        self.store = KVStore(":memory:")
        self.s1 = FeedSource("https://one.example/feed")
        self.s2 = FeedSource("https://two.example/feed", title_override="Two")
        self.feeds = {
            self.s1.url: ParsedFeed("One", [
                RawEntry("X", "https://one.example/x", "x body", at(10)),
                RawEntry("Y", "https://one.example/y", "y body", at(9)),
            ]),
            self.s2.url: ParsedFeed("Reported Two", [
                RawEntry("Z", "https://two.example/z", "z body", at(9, 30)),
            ]),
        }

    def tearDown(self):
        self.store.close()

    def ingest(self, fetcher, sources=None, **kwargs):
        return ingest_feeds(self.store, sources or [self.s1, self.s2], fetcher, clock=lambda: NOW, **kwargs)

    def test_two_sources_stored_and_ordered(self):
        result = self.ingest(FakeFetcher(self.feeds))

        self.assertTrue(result.committed)
        self.assertEqual(result.new_items, 3)
        self.assertEqual(len(self.store), 3)
        self.assertEqual([item.title for item in load_recent_items(self.store)], ["X", "Z", "Y"])
        z = [item for item in load_recent_items(self.store) if item.title == "Z"][0]
        self.assertEqual(z.effective_feed_title, "Two")

    def test_second_run_writes_nothing(self):
        self.ingest(FakeFetcher(self.feeds))
        result = self.ingest(FakeFetcher(self.feeds))

        self.assertEqual(result.new_items, 0)
        self.assertEqual(result.duplicates, 3)
        self.assertEqual(result.item_errors, 0)
        self.assertTrue(result.committed)
        self.assertEqual(len(self.store), 3)

    def test_failed_source_does_not_block_others(self):
        self.feeds[self.s1.url] = FetchError(self.s1.url, "connection refused")

        result = self.ingest(FakeFetcher(self.feeds))

        self.assertTrue(result.committed)
        self.assertEqual(result.failed_sources, [self.s1.url])
        self.assertEqual([item.title for item in load_recent_items(self.store)], ["Z"])

    def test_all_sources_fail(self):
        fetcher = FakeFetcher({
            self.s1.url: FetchError(self.s1.url, "timeout"),
            self.s2.url: RuntimeError("parser crashed"),
        })
        result = self.ingest(fetcher)

        self.assertEqual(sorted(result.failed_sources), sorted([self.s1.url, self.s2.url]))
        self.assertEqual(len(self.store), 0)

    def test_every_worker_drained(self):
        """Every emitted item is processed, whatever the interleaving."""
        sources = [FeedSource(f"https://feed{i}.example/rss") for i in range(20)]
        feeds = {
            source.url: ParsedFeed(f"Feed {i}", [
                RawEntry(f"item {n}", f"{source.url}/{n}", "", at(8) + timedelta(minutes=n))
                for n in range(i * 3)
            ])
            for i, source in enumerate(sources)
        }
        expected = sum(i * 3 for i in range(20))

        result = self.ingest(FakeFetcher(feeds, jitter=True), sources=sources)

        self.assertEqual(result.items_received, expected)
        self.assertEqual(result.new_items, expected)
        self.assertEqual(len(self.store), expected)
        self.assertEqual(result.sources, 20)

    def test_duplicate_within_run(self):
        entry = RawEntry("X", "https://one.example/x", "", at(10))
        feeds = {self.s1.url: ParsedFeed("One", [entry, entry])}

        result = self.ingest(FakeFetcher(feeds), sources=[self.s1])

        self.assertEqual(result.new_items, 1)
        self.assertEqual(result.duplicates, 1)
        self.assertEqual(len(self.store), 1)

    def test_same_link_from_different_sources_is_distinct(self):
        feeds = {
            self.s1.url: ParsedFeed("One", [RawEntry("X", "https://shared.example/x", "", at(10))]),
            self.s2.url: ParsedFeed("Two", [RawEntry("X", "https://shared.example/x", "", at(10))]),
        }
        result = self.ingest(FakeFetcher(feeds))
        self.assertEqual(result.new_items, 2)

    def test_commit_failure_persists_nothing(self):
        self.store.set(b"existing", b"{}")
        with patch.object(self.store, '_apply', side_effect=StoreError("disk full")):
            result = self.ingest(FakeFetcher(self.feeds))

        self.assertFalse(result.committed)
        self.assertEqual(len(self.store), 1)
        self.assertEqual(self.store.get(b"existing"), b"{}")

    def test_store_error_skips_only_that_item(self):
        original_get = self.store.get

        def flaky_get(key):
            if b"one.example%2Fy" in key:
                raise StoreError("read failed")
            return original_get(key)

        with patch.object(self.store, 'get', side_effect=flaky_get):
            result = self.ingest(FakeFetcher(self.feeds))

        self.assertTrue(result.committed)
        self.assertEqual(result.item_errors, 1)
        self.assertEqual(result.new_items, 2)
        self.assertEqual(sorted(item.title for item in load_recent_items(self.store)), ["X", "Z"])

    def test_year_one_dates_are_readable_and_prunable(self):
        feeds = {self.s1.url: ParsedFeed("One", [
            RawEntry("About", "https://one.example/about", "", datetime(1, 1, 1, tzinfo=timezone.utc)),
        ])}
        self.ingest(FakeFetcher(feeds), sources=[self.s1])

        self.assertEqual([item.title for item in load_recent_items(self.store)], ["About"])

        result = RetentionPruner(self.store, timedelta(days=30)).prune(now=NOW)
        self.assertEqual((result.deleted, result.errors), (1, 0))
        self.assertEqual(len(self.store), 0)

    def test_no_sources(self):
        with self.assertRaises(SubscriptionError):
            ingest_feeds(self.store, [], FakeFetcher({}))


class TestIngestionEnrichment(unittest.TestCase):

    def setUp(self):
        self.store = KVStore(":memory:")
        self.source = FeedSource("https://one.example/feed")
        self.feeds = {
            self.source.url: ParsedFeed("One", [
                RawEntry("fresh", "https://one.example/fresh", "", NOW - timedelta(hours=1)),
                RawEntry("old", "https://one.example/old", "", NOW - timedelta(days=3)),
            ]),
        }
        self.summarizer = Mock(enabled=True)
        self.summarizer.summarize.return_value = "A short summary."

    def tearDown(self):
        self.store.close()

    def ingest(self):
        return ingest_feeds(self.store, [self.source], FakeFetcher(self.feeds),
                            summarizer=self.summarizer, model="phi3:medium",
                            enrichment_cutoff=timedelta(days=2), clock=lambda: NOW)

    def stored(self):
        return {decode_record(value).title: decode_record(value) for _, value in self.store.items()}

    def test_only_recent_items_enriched(self):
        result = self.ingest()

        self.summarizer.summarize.assert_called_once_with("https://one.example/fresh", "phi3:medium")
        self.assertEqual(result.enriched, 1)
        stored = self.stored()
        self.assertEqual(stored["fresh"].summary, "A short summary.")
        self.assertIsNone(stored["old"].summary)

    def test_existing_items_not_enriched_again(self):
        self.ingest()
        self.summarizer.summarize.reset_mock()

        result = self.ingest()

        self.summarizer.summarize.assert_not_called()
        self.assertEqual(result.new_items, 0)

    def test_enrichment_failure_stores_item_without_summary(self):
        self.summarizer.summarize.side_effect = EnrichmentTimeoutError("timed out")

        result = self.ingest()

        self.assertEqual(result.enrichment_failures, 1)
        self.assertEqual(result.new_items, 2)
        self.assertIsNone(self.stored()["fresh"].summary)

    def test_unexpected_summarizer_error_stores_item(self):
        self.summarizer.summarize.side_effect = RuntimeError("boom")

        result = self.ingest()

        self.assertTrue(result.committed)
        self.assertEqual(result.enrichment_failures, 1)
        self.assertEqual(result.new_items, 2)
        self.assertIsNone(self.stored()["fresh"].summary)

    def test_disabled_summarizer_is_never_called(self):
        self.summarizer.enabled = False
        self.ingest()
        self.summarizer.summarize.assert_not_called()


class TestIngestionCoordinator(unittest.TestCase):
    """Drive the coordinator directly with hand-built channel messages."""

    def setUp(self):
        self.store = KVStore(":memory:")
        self.coordinator = IngestionCoordinator(self.store, clock=lambda: NOW)

    def tearDown(self):
        self.store.close()

    def test_waits_for_every_done(self):
        channel = queue.Queue()
        item = Item("https://one.example/feed", "X", "One", "https://one.example/x", "", at(10))
        channel.put((ITEM, item))
        channel.put((DONE, WorkerReport("https://one.example/feed", 1)))
        channel.put((DONE, WorkerReport("https://two.example/feed", 0, FetchError("https://two.example/feed", "x"))))

        result = self.coordinator.gather(channel, 2)

        self.assertTrue(channel.empty())
        self.assertEqual(result.new_items, 1)
        self.assertEqual(result.failed_sources, ["https://two.example/feed"])

    def test_unknown_messages_ignored(self):
        channel = queue.Queue()
        channel.put(("bogus", None))
        channel.put((DONE, WorkerReport("https://one.example/feed", 0)))

        result = self.coordinator.gather(channel, 1)
        self.assertTrue(result.committed)
        self.assertEqual(result.items_received, 0)


if __name__ == '__main__':
    unittest.main()
