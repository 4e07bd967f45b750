"""
Retention pruning: delete stored items older than the retention window.
"""
import logging
import time
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from .exceptions import StoreError
from .kv_store import KVStore
from .models import read_published
from .utils.logging_utils import log_prune_results

logger = logging.getLogger(__name__)


@dataclass
class PruneResult:
    scanned: int = 0
    deleted: int = 0
    kept: int = 0
    errors: int = 0
    duration_seconds: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


class RetentionPruner:
    """
    Walks every record in the store and deletes those published before
    `now - max_age`. Running it twice without new writes deletes nothing the
    second time.
    """

    def __init__(self, store: KVStore, max_age: timedelta):
        if max_age <= timedelta(0):
            raise ValueError("Retention window must be positive")
        self.store = store
        self.max_age = max_age

    def prune(self, now: Optional[datetime] = None) -> PruneResult:
        """
        Run one pruning pass.

        Holds the store's write lock for the whole scan, so it never overlaps
        an ingestion commit. Records that cannot be decoded are kept; delete
        failures are counted and the scan continues.

        Args:
            now: Reference time (aware); defaults to the current UTC time

        Returns:
            PruneResult

        Raises:
            StoreError: If the store cannot be scanned at all
        """
        start_time = time.time()
        now = now or datetime.now(timezone.utc)
        cutoff = now - self.max_age
        result = PruneResult()

        with self.store.write_lock:
            for key, value in self.store.items():
                result.scanned += 1
                try:
                    published = read_published(value)
                except (KeyError, TypeError, ValueError) as e:
                    result.errors += 1
                    logger.warning(f"Keeping record {key!r}: cannot read published time: {e}")
                    continue

                if published >= cutoff:
                    result.kept += 1
                    continue

                try:
                    self.store.delete(key)
                    result.deleted += 1
                    logger.debug(f"Pruned {key!r} published {published.isoformat()}")
                except StoreError as e:
                    result.errors += 1
                    logger.error(f"Failed to prune {key!r}: {e}")

        result.duration_seconds = time.time() - start_time
        log_prune_results(logger, result.scanned, result.deleted, result.errors, result.duration_seconds)
        return result
