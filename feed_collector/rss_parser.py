"""
RSS Parser module for processing RSS and Atom feeds.
Extracts the feed title and raw entries from feed XML.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

import feedparser

from .exceptions import FetchError
from .models import ParsedFeed, RawEntry
from .utils.helpers import parse_date

logger = logging.getLogger(__name__)


class RSSParser:
    """
    Parses RSS/Atom documents into ParsedFeed objects.
    """

    def __init__(self):
        """Initialize the RSS parser."""
        logger.debug("RSSParser initialized")

    def parse(self, content, url: str) -> ParsedFeed:
        """
        Parse feed content into structured format.

        Args:
            content: Raw feed document (bytes or str)
            url: URL the document was fetched from, used in errors

        Returns:
            ParsedFeed with the feed title and entries in document order

        Raises:
            FetchError: If the document is malformed and yields no entries
        """
        feed = feedparser.parse(content)

        if feed.get('bozo') and not feed.entries:
            error = feed.get('bozo_exception')
            raise FetchError(url, f"Malformed feed document: {error}")

        title = feed.feed.get('title', '').strip()
        entries = []
        for entry in feed.entries:
            entries.append(self._extract_entry(entry))

        logger.debug(f"Parsed {len(entries)} entries from {url}")
        return ParsedFeed(title=title, entries=entries)

    def _extract_entry(self, entry) -> RawEntry:
        """
        Extract relevant data from a feed entry.

        Args:
            entry: Feed entry from feedparser

        Returns:
            RawEntry with title, link, content and timestamps
        """
        content = ''
        contents = entry.get('content') or []
        if contents:
            content = contents[0].get('value', '')
        if not content:
            content = entry.get('summary', '')

        return RawEntry(
            title=entry.get('title', '').strip(),
            link=entry.get('link', '').strip(),
            content=content,
            published=self._entry_time(entry, 'published'),
            updated=self._entry_time(entry, 'updated'),
        )

    def _entry_time(self, entry, field: str) -> Optional[datetime]:
        # feedparser normalizes recognised dates to UTC struct_time
        parsed = entry.get(f'{field}_parsed')
        if parsed:
            return datetime(*parsed[:6], tzinfo=timezone.utc)
        return parse_date(entry.get(field))
