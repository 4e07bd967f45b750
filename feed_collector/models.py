"""
Data model for Feed Collector.

FeedSource comes from the subscription list, RawEntry/ParsedFeed come from the
feed parser, and Item is the normalized form that gets stored.
"""
import json
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

# Items without any timestamp are pinned here instead of "now", so their rank
# does not move on every run.
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime truncated to whole seconds."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0)


def format_timestamp(value: datetime) -> str:
    # strftime("%Y") does not zero-pad years below 1000
    value = to_utc(value)
    return f"{value.year:04d}-{value:%m-%dT%H:%M:%S}Z"


def parse_timestamp(value: str) -> datetime:
    """
    Parse a stored "YYYY-MM-DDTHH:MM:SSZ" timestamp.

    Raises:
        ValueError: If the value is not in that exact form
    """
    if not isinstance(value, str) or len(value) != 20:
        raise ValueError(f"Malformed timestamp: {value!r}")
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class FeedSource:
    """One subscribed feed URL with an optional display title override."""
    url: str
    title_override: Optional[str] = None


@dataclass
class RawEntry:
    title: str = ""
    link: str = ""
    content: str = ""
    published: Optional[datetime] = None
    updated: Optional[datetime] = None


@dataclass
class ParsedFeed:
    title: str = ""
    entries: List[RawEntry] = field(default_factory=list)


@dataclass
class Item:
    """
    Normalized representation of one feed entry.

    Attributes:
        source_url: URL of the feed the entry came from
        title: Entry title
        effective_feed_title: Title override of the source, else the feed's own title
        link: Absolute link to the entry
        content: Entry body
        published: Aware UTC timestamp (epoch zero when the feed gave none)
        summary: Generated summary, attached at most once before first persistence
    """
    source_url: str
    title: str
    effective_feed_title: str
    link: str
    content: str
    published: datetime
    summary: Optional[str] = None

    def __post_init__(self):
        self.published = to_utc(self.published)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["published"] = format_timestamp(self.published)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        """
        Rebuild an Item from a stored record.

        Raises:
            KeyError: If a required field is missing
            ValueError: If the published timestamp is malformed
        """
        return cls(
            source_url=data["source_url"],
            title=data["title"],
            effective_feed_title=data["effective_feed_title"],
            link=data["link"],
            content=data["content"],
            published=parse_timestamp(data["published"]),
            summary=data.get("summary"),
        )


def encode_record(item: Item) -> bytes:
    """Serialize an Item into the stored record format (UTF-8 JSON)."""
    return json.dumps(item.to_dict(), ensure_ascii=False, sort_keys=True).encode("utf-8")


def decode_record(data: bytes) -> Item:
    """
    Deserialize a stored record back into an Item.

    Raises:
        ValueError: If the record is not valid JSON or has malformed fields
        KeyError: If a required field is missing
    """
    return Item.from_dict(json.loads(data.decode("utf-8")))


def read_published(data: bytes) -> datetime:
    """Read only the published timestamp of a stored record."""
    return parse_timestamp(json.loads(data.decode("utf-8"))["published"])
