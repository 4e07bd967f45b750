"""
Fetch worker: turns one feed source into normalized items.

Each worker runs on its own thread and talks to the ingestion coordinator
through a shared FIFO queue. It puts one ITEM message per entry followed by
exactly one DONE message, whatever happens, so the coordinator always sees a
worker's items before its completion.
"""
import logging
import queue
from typing import NamedTuple, Optional

from .exceptions import FeedCollectorError, SourceError
from .models import EPOCH, FeedSource, Item, ParsedFeed, RawEntry
from .utils.helpers import resolve_link, validate_url
from .utils.logging_utils import log_source_failure

logger = logging.getLogger(__name__)

ITEM = "item"
DONE = "done"


class WorkerReport(NamedTuple):
    """Completion signal of one worker."""
    url: str
    items_emitted: int
    error: Optional[Exception] = None


def build_item(source: FeedSource, parsed_feed: ParsedFeed, entry: RawEntry) -> Item:
    """
    Normalize one raw entry.

    Args:
        source: Feed source the entry came from
        parsed_feed: Parsed feed, for its reported title
        entry: Raw entry to normalize

    Returns:
        Item with effective feed title, absolute link and a stable timestamp
    """
    feed_title = source.title_override or parsed_feed.title
    published = entry.published or entry.updated or EPOCH

    return Item(
        source_url=source.url,
        title=entry.title,
        effective_feed_title=feed_title,
        link=resolve_link(entry.link, source.url),
        content=entry.content,
        published=published,
    )


class FetchWorker:
    """
    Fetches one feed source and emits its items on the shared channel.
    """

    def __init__(self, source: FeedSource, fetcher, channel: queue.Queue):
        """
        Args:
            source: Feed source to process
            fetcher: Object with a fetch_feed(url) -> ParsedFeed method
            channel: Shared queue read by the ingestion coordinator
        """
        self.source = source
        self.fetcher = fetcher
        self.channel = channel

    def run(self) -> WorkerReport:
        emitted = 0
        error = None
        try:
            if not validate_url(self.source.url):
                raise SourceError(f"Feed URL must have a scheme and host: {self.source.url!r}")

            parsed_feed = self.fetcher.fetch_feed(self.source.url)

            for entry in parsed_feed.entries:
                self.channel.put((ITEM, build_item(self.source, parsed_feed, entry)))
                emitted += 1

            logger.debug(f"Emitted {emitted} items from {self.source.url}")

        except FeedCollectorError as e:
            error = e
            log_source_failure(logger, self.source.url, e)
        except Exception as e:
            error = e
            logger.exception(f"Unexpected error processing feed {self.source.url}: {e}")
        finally:
            report = WorkerReport(self.source.url, emitted, error)
            self.channel.put((DONE, report))

        return report
