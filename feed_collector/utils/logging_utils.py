"""
Logging utilities for Feed Collector.
Contains helper functions for consistent logging across modules.
"""
import logging, os
from logging.handlers import TimedRotatingFileHandler
from typing import Optional


def log_source_failure(logger: logging.Logger, url: str, error: Exception) -> None:
    """
    Log a feed source that contributed no items to this run.

    Args:
        logger: Logger instance to use
        url: Feed URL that failed
        error: The error that stopped the source
    """
    logger.error(f"Feed source failed ({type(error).__name__}) for {url}: {error}")


def log_ingestion_results(logger: logging.Logger, received: int, new: int, duplicates: int, errors: int) -> None:
    """
    Log deduplication results of one ingestion run in a consistent format.

    Args:
        logger: Logger instance to use
        received: Number of items received from all workers
        new: Number of new items staged for commit
        duplicates: Number of items already present
        errors: Number of items skipped because of store errors
    """
    if received == 0:
        logger.info("No items to process")
        return

    duplicate_percentage = duplicates / received * 100

    logger.info(f"Deduplication results: {received} received, {new} new, {duplicates} duplicates "
                f"({duplicate_percentage:.1f}%), {errors} errors")

    if new == 0:
        logger.debug("No new items found - all were duplicates or skipped")


def log_prune_results(logger: logging.Logger, scanned: int, deleted: int, errors: int, duration: float) -> None:
    """
    Log retention pruning results.

    Args:
        logger: Logger instance to use
        scanned: Number of records examined
        deleted: Number of records removed
        errors: Number of per-key failures
        duration: Time taken for the scan
    """
    logger.info(f"Pruned {deleted}/{scanned} records in {duration:.2f}s ({errors} errors)")


def log_collection_summary(logger: logging.Logger, stats: dict, duration: float) -> None:
    """
    Log collection cycle summary.

    Args:
        logger: Logger instance to use
        stats: Collection statistics dictionary
        duration: Total duration in seconds
    """
    new_items = stats.get('new_items', 0)
    received = stats.get('items_received', 0)
    sources = stats.get('sources', 0)
    failed = stats.get('failed_sources', 0)
    pruned = stats.get('pruned', 0)

    logger.info(f"Collection completed in {duration:.2f}s: {new_items}/{received} new items from {sources} sources "
                f"({failed} failed sources, {pruned} pruned)")


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = "logs", backup_count: int = 7) -> logging.Logger:
    """
    Configure console and file logging.

    Args:
        log_level: Minimum logging level (e.g., "INFO", "DEBUG")
        log_dir: Directory to store log files, or None for console only
        backup_count: Number of rotated log files to keep

    Returns:
        The configured root logger instance.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Drop handlers from a previous call so reconfiguring does not duplicate output
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))
    root_logger.addHandler(console_handler)

    # File handler (daily rotation)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = TimedRotatingFileHandler(os.path.join(log_dir, 'feed_collector.log'),
                                                when='midnight', interval=1, backupCount=backup_count)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        root_logger.addHandler(file_handler)

    root_logger.info(f"Logging configured to level {log_level.upper()}. Log files in {log_dir or '<console only>'}")
    return root_logger
