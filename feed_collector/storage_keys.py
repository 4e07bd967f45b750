"""
Storage key scheme for feed items.

A key identifies an item by (source_url, effective_feed_title, link, published)
and is laid out as:

    v3|<source_url>|<effective_feed_title>|<link>|<published>

The separator is "|" (0x7C). Every field is percent-encoded (UTF-8, RFC 3986,
no safe characters) before joining, so a field never contains a raw separator
and "%" itself is escaped as "%25". Percent-encoding is injective, which keeps
keys unique for distinct identity tuples. `published` is RFC 3339 UTC with
second precision.

Records written by the previous layout ("v2", unescaped fields) are only
readable through `migrate_legacy_key`.
"""
import logging
import urllib.parse
from datetime import datetime
from typing import NamedTuple

from .models import Item, decode_record, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

KEY_SEPARATOR = b"|"
KEY_VERSION = b"v3"
LEGACY_KEY_VERSION = b"v2"
KEY_PART_COUNT = 5


class KeyFields(NamedTuple):
    source_url: str
    effective_feed_title: str
    link: str
    published: datetime


def _encode_field(value: str) -> bytes:
    return urllib.parse.quote(value, safe="", encoding="utf-8").encode("ascii")


def _decode_field(value: bytes) -> str:
    return urllib.parse.unquote(value.decode("ascii"), encoding="utf-8", errors="strict")


def make_key(source_url: str, effective_feed_title: str, link: str, published: datetime) -> bytes:
    """Build the storage key for a set of identity fields."""
    fields = (source_url, effective_feed_title, link, format_timestamp(published))
    return KEY_SEPARATOR.join([KEY_VERSION] + [_encode_field(field) for field in fields])


def build_key(item: Item) -> bytes:
    """Build the storage key for an item."""
    return make_key(item.source_url, item.effective_feed_title, item.link, item.published)


def parse_key(key: bytes) -> KeyFields:
    """
    Split a current-layout key back into its identity fields.

    Args:
        key: Storage key

    Returns:
        The decoded identity fields

    Raises:
        ValueError: If the key is not a well-formed current-layout key
    """
    parts = key.split(KEY_SEPARATOR)
    if parts[0] != KEY_VERSION:
        raise ValueError(f"Unsupported key version: {parts[0]!r}")
    if len(parts) != KEY_PART_COUNT:
        raise ValueError(f"Expected {KEY_PART_COUNT} key parts, found {len(parts)}")

    try:
        source_url, feed_title, link, published = (_decode_field(part) for part in parts[1:])
        return KeyFields(source_url, feed_title, link, parse_timestamp(published))
    except UnicodeError as e:
        raise ValueError(f"Key contains undecodable field: {e}") from e


def migrate_legacy_key(key: bytes) -> bytes:
    """
    Convert a v2 key (raw fields joined by "|") into the current layout.

    A v2 key is only convertible when splitting it yields exactly five parts;
    any other count means a field contained the separator and the original
    boundaries cannot be recovered.

    Raises:
        ValueError: If the key is not a v2 key or is ambiguous
    """
    parts = key.split(KEY_SEPARATOR)
    if parts[0] != LEGACY_KEY_VERSION:
        raise ValueError(f"Not a legacy key: {parts[0]!r}")
    if len(parts) != KEY_PART_COUNT:
        raise ValueError(f"Ambiguous legacy key with {len(parts)} parts")

    source_url, feed_title, link, published = (part.decode("utf-8") for part in parts[1:])
    published_at = datetime.fromisoformat(published.replace("Z", "+00:00"))
    return make_key(source_url, feed_title, link, published_at)


def migrate_legacy_keys(store) -> int:
    """
    Re-key every v2 record in the store to the current layout in one batch.

    Records whose key cannot be converted, or whose value is not a current
    item record, are logged and left in place. When the converted key already
    exists, the existing record wins and the legacy one is dropped.

    Args:
        store: Open KVStore

    Returns:
        Number of legacy records migrated

    Raises:
        StoreError: If the batch cannot be committed
    """
    migrated = 0
    with store.write_lock:
        batch = store.new_batch()
        for key, value in store.items(prefix=LEGACY_KEY_VERSION + KEY_SEPARATOR):
            try:
                new_key = migrate_legacy_key(key)
                decode_record(value)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping legacy record {key!r}: {e}")
                continue

            if batch.get(new_key) is None:
                batch.set(new_key, value)
            batch.delete(key)
            migrated += 1

        if migrated:
            batch.commit()
            logger.info(f"Migrated {migrated} legacy records to key version {KEY_VERSION.decode()}")
        else:
            batch.discard()
    return migrated
