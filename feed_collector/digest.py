"""
Digest output: renders recent stored items as Markdown or HTML.
"""
import html
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytz

from .kv_store import KVStore
from .models import Item, decode_record

logger = logging.getLogger(__name__)

ITEM_TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z"
FILENAME_BASE = "index"

MARKDOWN_MODE = "markdown"
HTML_MODE = "html"
OUTPUT_MODES = (MARKDOWN_MODE, HTML_MODE)

STYLESHEET = """
body { font-family: sans-serif; max-width: 50em; margin: auto; padding: 0 1em; line-height: 1.4; }
h1 { font-size: 1.2em; border-bottom: 1px solid #ccc; margin-top: 2em; }
a { text-decoration: none; }
small { color: #666; }
"""


def get_timezone(name: Optional[str]):
    """Resolve a timezone name, falling back to UTC for unknown names."""
    if not name:
        return pytz.utc
    try:
        return pytz.timezone(name)
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone: {name}, using UTC")
        return pytz.utc


def format_day_header(value: datetime) -> str:
    """Format a day header such as "Monday January 2, 2006"."""
    return f"{value:%A %B} {value.day}, {value.year}"


def load_recent_items(store: KVStore, max_age: Optional[timedelta] = None,
                      now: Optional[datetime] = None) -> List[Item]:
    """
    Read stored items published within `max_age`, newest first.

    Ties on the published time are broken by title, also descending.
    Records that cannot be decoded are logged and skipped.

    Args:
        store: Open key-value store
        max_age: Recency cutoff; None returns every item
        now: Reference time for the cutoff

    Returns:
        Sorted list of items
    """
    cutoff = None
    if max_age is not None:
        cutoff = (now or datetime.now(timezone.utc)) - max_age

    items = []
    for key, value in store.items():
        try:
            item = decode_record(value)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping undecodable record {key!r}: {e}")
            continue
        if cutoff is None or item.published >= cutoff:
            items.append(item)

    items.sort(key=lambda item: (item.published, item.title), reverse=True)
    return items


def _day_headers(items: List[Item], tz):
    """Yield (header_or_None, item, local_time) with a header at each day change."""
    last_day = None
    for item in items:
        local_time = item.published.astimezone(tz)
        day = local_time.date()
        header = format_day_header(local_time) if day != last_day else None
        last_day = day
        yield header, item, local_time


def render_markdown(items: List[Item], tz=pytz.utc) -> str:
    lines = []
    for header, item, local_time in _day_headers(items, tz):
        if header:
            lines.append(f"# {header}\n\n")
        lines.append(f"[{item.title}]({item.link}) {item.effective_feed_title} @ "
                     f"{local_time.strftime(ITEM_TIME_FORMAT)}\n\n")
    return "".join(lines)


def render_html(items: List[Item], tz=pytz.utc, generated_at: Optional[datetime] = None) -> str:
    generated_at = generated_at or datetime.now(timezone.utc)
    parts = [
        "<html>\n<head>\n<title>Feeds</title>\n",
        f"<style>{STYLESHEET}</style>\n",
        '<meta http-equiv="Content-Type" content="text/html; charset=UTF-8" />\n',
        '<meta name="viewport" content="initial-scale=1.0" />\n',
        "</head>\n<body>\n",
    ]

    for header, item, local_time in _day_headers(items, tz):
        if header:
            parts.append(f"<h1>{html.escape(header)}</h1>\n\n")
        parts.append(
            f'<p><a href="{html.escape(item.link, quote=True)}">{html.escape(item.title)}</a> '
            f'<small>{html.escape(item.effective_feed_title)} @ '
            f'{html.escape(local_time.strftime(ITEM_TIME_FORMAT))}</small></p>\n')
        if item.summary:
            parts.append(f"<p><small>{html.escape(item.summary)}</small></p>\n")

    parts.append(f"<p><small>Generated: {generated_at.astimezone(tz).strftime(ITEM_TIME_FORMAT)}</small></p>")
    parts.append("</body>\n</html>\n")
    return "".join(parts)


def write_digest(store: KVStore, mode: str = HTML_MODE, output_dir: str = ".",
                 max_age: Optional[timedelta] = None, timezone_name: Optional[str] = None) -> str:
    """
    Render recent items and write them to index.md or index.html.

    Args:
        store: Open key-value store
        mode: "markdown" or "html"
        output_dir: Directory for the output file
        max_age: Recency cutoff for included items
        timezone_name: Timezone for day headers and timestamps

    Returns:
        The rendered document

    Raises:
        ValueError: If the mode is unknown
        OSError: If the file cannot be written
    """
    if mode not in OUTPUT_MODES:
        raise ValueError(f"Unknown output mode: {mode!r}")

    tz = get_timezone(timezone_name)
    items = load_recent_items(store, max_age)

    if mode == HTML_MODE:
        data = render_html(items, tz)
        extension = "html"
    else:
        data = render_markdown(items, tz)
        extension = "md"

    os.makedirs(output_dir, exist_ok=True)
    file_path = os.path.join(output_dir, f"{FILENAME_BASE}.{extension}")
    with open(file_path, 'w', encoding='utf-8') as f:
        f.write(data)

    logger.info(f"Wrote {len(items)} items to {file_path}")
    return data
