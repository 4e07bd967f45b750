"""
OPML subscription loader.
Reads an OPML file and returns the feed sources it lists, in document order.
"""
import logging
import xml.etree.ElementTree as ET
from typing import List

from .exceptions import SubscriptionError
from .models import FeedSource

logger = logging.getLogger(__name__)


def _collect_outlines(parent: ET.Element) -> List[FeedSource]:
    """Walk outlines depth first; nested outlines come before their parent."""
    feeds = []
    for outline in parent.findall('outline'):
        feeds.extend(_collect_outlines(outline))

        url = (outline.get('xmlUrl') or '').strip()
        if not url:
            continue
        title = (outline.get('text') or outline.get('title') or '').strip()
        feeds.append(FeedSource(url=url, title_override=title or None))
    return feeds


def load_feed_sources(opml_path: str) -> List[FeedSource]:
    """
    Load feed sources from an OPML file.

    Args:
        opml_path: Path to the OPML subscription list

    Returns:
        Ordered list of FeedSource

    Raises:
        SubscriptionError: If the file cannot be read or is not valid OPML
    """
    try:
        tree = ET.parse(opml_path)
    except OSError as e:
        raise SubscriptionError(f"Unable to read subscription list {opml_path}: {e}") from e
    except ET.ParseError as e:
        raise SubscriptionError(f"Malformed subscription list {opml_path}: {e}") from e

    root = tree.getroot()
    if root.tag != 'opml':
        raise SubscriptionError(f"Malformed subscription list {opml_path}: root element is <{root.tag}>, expected <opml>")

    body = root.find('body')
    if body is None:
        raise SubscriptionError(f"Malformed subscription list {opml_path}: missing <body>")

    feeds = _collect_outlines(body)
    logger.info(f"Loaded {len(feeds)} feed sources from {opml_path}")
    return feeds
