"""
Feed Collector Package

Fetches a list of subscribed RSS/Atom feeds concurrently, stores new items
in an embedded key-value store with deduplication, optionally attaches
LLM-generated summaries, prunes old items and writes a digest page.
"""

__version__ = "1.0.0"
__author__ = "Feed Collector Team"
__email__ = "team@example.com"

# Package-level imports for convenience
from .config_manager import ConfigManager
from .ingestion import IngestionCoordinator, IngestionResult, ingest_feeds
from .kv_store import KVStore, WriteBatch
from .retention import RetentionPruner
from .rss_fetcher import RSSFetcher
from .rss_parser import RSSParser
from .scheduler import Scheduler

__all__ = [
    'ConfigManager',
    'IngestionCoordinator',
    'IngestionResult',
    'ingest_feeds',
    'KVStore',
    'WriteBatch',
    'RetentionPruner',
    'RSSFetcher',
    'RSSParser',
    'Scheduler',
]
