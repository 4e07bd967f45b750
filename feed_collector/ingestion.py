"""
Ingestion pipeline: concurrent fetch, single-writer dedup and atomic commit.

`ingest_feeds` starts one FetchWorker thread per feed source. All workers feed
one FIFO queue that the IngestionCoordinator drains on the calling thread. The
coordinator is the only writer: it checks each item's key against an indexed
batch, enriches and stages new items, and commits the batch once every worker
has reported completion.
"""
import logging
import queue
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Sequence

from .enrichment import NullSummarizer
from .exceptions import EnrichmentError, StoreError, SubscriptionError
from .fetch_worker import DONE, ITEM, FetchWorker, WorkerReport
from .kv_store import KVStore, WriteBatch
from .models import FeedSource, Item, encode_record
from .storage_keys import build_key
from .utils.logging_utils import log_ingestion_results

logger = logging.getLogger(__name__)

DEFAULT_ENRICHMENT_CUTOFF = timedelta(days=2)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class IngestionResult:
    """Statistics of one ingestion run."""
    sources: int = 0
    items_received: int = 0
    new_items: int = 0
    duplicates: int = 0
    enriched: int = 0
    enrichment_failures: int = 0
    item_errors: int = 0
    failed_sources: List[str] = field(default_factory=list)
    committed: bool = False
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class IngestionCoordinator:
    """
    Single consumer of the item channel and single writer to the store.
    """

    def __init__(self, store: KVStore, summarizer=None, model: str = "",
                 enrichment_cutoff: timedelta = DEFAULT_ENRICHMENT_CUTOFF,
                 clock: Callable[[], datetime] = utc_now):
        """
        Args:
            store: Open key-value store
            summarizer: Enrichment capability; NullSummarizer when omitted
            model: Model name passed to the summarizer
            enrichment_cutoff: Only items published within this window are enriched
            clock: Returns the current aware UTC time
        """
        self.store = store
        self.summarizer = summarizer or NullSummarizer()
        self.model = model
        self.enrichment_cutoff = enrichment_cutoff
        self.clock = clock

    @property
    def enrichment_enabled(self) -> bool:
        return getattr(self.summarizer, 'enabled', True)

    def _should_enrich(self, item: Item, now: datetime) -> bool:
        return self.enrichment_enabled and item.published >= now - self.enrichment_cutoff

    def _enrich(self, item: Item, result: IngestionResult) -> None:
        try:
            summary = self.summarizer.summarize(item.link, self.model)
        except EnrichmentError as e:
            result.enrichment_failures += 1
            logger.warning(f"Storing {item.link} without summary ({type(e).__name__}): {e}")
            return
        except Exception as e:
            result.enrichment_failures += 1
            logger.exception(f"Unexpected summarizer error for {item.link}, storing without summary: {e}")
            return

        if isinstance(summary, str) and summary:
            item.summary = summary
            result.enriched += 1

    def process_item(self, batch: WriteBatch, item: Item, result: IngestionResult, now: datetime) -> None:
        """
        Dedup one item against the batch and stage it when new.

        Store errors are logged and only skip this item.
        """
        result.items_received += 1
        key = build_key(item)

        try:
            if batch.get(key) is not None:
                result.duplicates += 1
                return

            if self._should_enrich(item, now):
                self._enrich(item, result)

            batch.set(key, encode_record(item))
            result.new_items += 1

        except (StoreError, TypeError, ValueError) as e:
            result.item_errors += 1
            logger.error(f"Skipping item {item.link!r} from {item.source_url}: {e}")

    def gather(self, channel: queue.Queue, outstanding: int) -> IngestionResult:
        """
        Drain the channel until `outstanding` workers have reported DONE, then
        commit everything staged in one atomic operation.

        Args:
            channel: Queue carrying (ITEM, Item) and (DONE, WorkerReport) messages
            outstanding: Number of workers launched

        Returns:
            IngestionResult for the run
        """
        start_time = time.time()
        result = IngestionResult(sources=outstanding)
        now = self.clock()
        batch = self.store.new_batch()

        try:
            while outstanding > 0:
                kind, payload = channel.get()

                if kind == ITEM:
                    self.process_item(batch, payload, result, now)
                elif kind == DONE:
                    outstanding -= 1
                    report: WorkerReport = payload
                    if report.error is not None:
                        result.failed_sources.append(report.url)
                else:
                    logger.warning(f"Ignoring unknown channel message: {kind!r}")

            try:
                batch.commit()
                result.committed = True
            except StoreError as e:
                logger.error(f"Commit failed, discarding {result.new_items} new items from this run: {e}")
        finally:
            if not result.committed:
                batch.discard()

        result.duration_seconds = time.time() - start_time
        log_ingestion_results(logger, result.items_received, result.new_items,
                              result.duplicates, result.item_errors)
        return result


def ingest_feeds(store: KVStore, sources: Sequence[FeedSource], fetcher, summarizer=None,
                 model: str = "", enrichment_cutoff: timedelta = DEFAULT_ENRICHMENT_CUTOFF,
                 clock: Callable[[], datetime] = utc_now) -> IngestionResult:
    """
    Run one ingestion: fetch every source concurrently and commit new items.

    The store's write lock is held for the whole run, so pruning cannot run
    against the store at the same time. The pipeline itself has no reentrancy
    guard beyond that lock; callers should not start overlapping runs.

    Args:
        store: Open key-value store
        sources: Feed sources to fetch
        fetcher: Object with fetch_feed(url) -> ParsedFeed, shared by all workers
        summarizer: Optional enrichment capability
        model: Model name for the summarizer
        enrichment_cutoff: Recency window for enrichment
        clock: Returns the current aware UTC time

    Returns:
        IngestionResult

    Raises:
        SubscriptionError: If there are no feed sources
    """
    if not sources:
        raise SubscriptionError("No feed sources to ingest")

    coordinator = IngestionCoordinator(store, summarizer=summarizer, model=model,
                                       enrichment_cutoff=enrichment_cutoff, clock=clock)
    channel = queue.Queue()
    workers = [FetchWorker(source, fetcher, channel) for source in sources]

    logger.info(f"Starting ingestion of {len(workers)} feed sources")
    with store.write_lock:
        # One thread per source; the pool is never smaller than the fan-out
        with ThreadPoolExecutor(max_workers=len(workers), thread_name_prefix="fetch-worker") as executor:
            for worker in workers:
                executor.submit(worker.run)
            result = coordinator.gather(channel, len(workers))

    if result.failed_sources:
        logger.warning(f"{len(result.failed_sources)} of {result.sources} sources failed: "
                       f"{', '.join(result.failed_sources)}")
    return result
