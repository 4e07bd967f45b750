"""
Helper functions for Feed Collector.
Contains utility functions for URL handling, durations and date parsing.
"""
import re
import urllib.parse
from datetime import datetime, timedelta, timezone
from typing import Optional
from dateutil import parser as date_parser
import logging

logger = logging.getLogger(__name__)

_DURATION_PATTERN = re.compile(r'(\d+(?:\.\d+)?)\s*([smhdw])')
_DURATION_UNITS = {
    's': 'seconds',
    'm': 'minutes',
    'h': 'hours',
    'd': 'days',
    'w': 'weeks',
}


def validate_url(url: str) -> bool:
    """
    Validate if a string is a proper URL.

    Args:
        url: URL string to validate

    Returns:
        True if the URL has both a scheme and a host, False otherwise
    """
    if not url or not isinstance(url, str):
        return False

    try:
        parsed = urllib.parse.urlparse(url)
        return bool(parsed.scheme and parsed.netloc)
    except ValueError:
        return False


def is_http_url(url: str) -> bool:
    """Check that a URL is an absolute http or https URL."""
    if not validate_url(url):
        return False
    return urllib.parse.urlparse(url).scheme.lower() in ('http', 'https')


def resolve_link(link: str, base_url: str) -> str:
    """
    Resolve a possibly relative entry link against the feed URL.

    Args:
        link: Link as found in the feed entry
        base_url: URL of the feed itself

    Returns:
        Absolute link, or the stripped input when it is empty or already absolute
    """
    link = (link or '').strip()
    if not link or validate_url(link):
        return link
    return urllib.parse.urljoin(base_url, link)


def parse_duration(value) -> timedelta:
    """
    Parse a duration such as "90s", "2d", "1h30m" or a bare number of seconds.

    Args:
        value: Duration string, number of seconds, or timedelta

    Returns:
        Parsed timedelta

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid duration: {value!r}")

    text = value.strip().lower()
    if re.fullmatch(r'\d+(?:\.\d+)?', text):
        return timedelta(seconds=float(text))

    matches = list(_DURATION_PATTERN.finditer(text))
    if not matches or ''.join(m.group(0) for m in matches).replace(' ', '') != text.replace(' ', ''):
        raise ValueError(f"Invalid duration: {value!r}")

    total = timedelta()
    for match in matches:
        total += timedelta(**{_DURATION_UNITS[match.group(2)]: float(match.group(1))})
    return total


def parse_date(date_string: Optional[str]) -> Optional[datetime]:
    """
    Parse a free-form date string from a feed into an aware UTC datetime.

    Args:
        date_string: Raw date string from the feed

    Returns:
        Parsed datetime, or None when the string is empty or unparseable
    """
    if not date_string or not date_string.strip():
        return None

    try:
        parsed = date_parser.parse(date_string)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        # Dates at the edge of the calendar can overflow when shifted to UTC
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError) as e:
        logger.debug(f"Failed to parse date '{date_string}': {e}")
        return None


def format_duration(seconds: float) -> str:
    """
    Format duration in human-readable format.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "2m 30s", "1h 5m")
    """
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes = int(seconds // 60)
    remaining_seconds = int(seconds % 60)

    if minutes < 60:
        return f"{minutes}m {remaining_seconds}s"

    hours = int(minutes // 60)
    remaining_minutes = int(minutes % 60)

    return f"{hours}h {remaining_minutes}m"
