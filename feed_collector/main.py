"""
Main entry point for Feed Collector.
Orchestrates the overall collection process: ingest, prune, write the digest.
"""
import argparse
import json
import logging
import sys
import threading
import time
from json.decoder import JSONDecodeError
from typing import Any, Callable, Dict, Optional

from . import __version__
from .config_manager import ConfigManager
from .digest import write_digest
from .digest_server import DigestServer
from .enrichment import NullSummarizer, OllamaSummarizer
from .exceptions import FeedCollectorError, StoreError, SubscriptionError
from .ingestion import ingest_feeds
from .kv_store import KVStore
from .opml_loader import load_feed_sources
from .retention import RetentionPruner
from .rss_fetcher import RSSFetcher
from .scheduler import Scheduler
from .storage_keys import migrate_legacy_keys
from .utils.logging_utils import log_collection_summary, setup_logging
from .utils.proxy_utils import ProxyConfig

logger = logging.getLogger(__name__)


class FeedCollector:
    """
    Main class to orchestrate one collection cycle against an open store.
    """

    def __init__(self, config_manager: ConfigManager, store: KVStore,
                 fetcher: Optional[RSSFetcher] = None, summarizer=None,
                 digest_listener: Optional[Callable[[str], None]] = None):
        """
        Initialize the collector with configuration and an open store.

        Args:
            config_manager: Loaded configuration
            store: Open key-value store, owned by the caller
            fetcher: Feed fetcher; built from configuration when omitted
            summarizer: Enrichment capability; built from configuration when omitted
            digest_listener: Called with each newly rendered digest
        """
        self.config_manager = config_manager
        self.store = store

        proxy_config = ProxyConfig(config_manager.get_config_value("networking.proxy", {}))
        self.fetcher = fetcher or RSSFetcher(
            timeout=config_manager.get_config_value("networking.timeout_seconds", 30),
            proxy_config=proxy_config,
            user_agent=config_manager.get_config_value("networking.user_agent"),
        )
        self.summarizer = summarizer or self._build_summarizer(proxy_config)
        self.pruner = RetentionPruner(store, config_manager.get_duration("storage.prune_max_age"))
        self.digest_listener = digest_listener
        self._cycle_lock = threading.Lock()

        logger.info("Feed Collector initialized successfully")

    def _build_summarizer(self, proxy_config: ProxyConfig):
        if not self.config_manager.get_config_value("enrichment.enabled", False):
            return NullSummarizer()
        return OllamaSummarizer(
            base_url=self.config_manager.get_config_value("enrichment.base_url"),
            timeout=self.config_manager.get_config_value("enrichment.timeout_seconds"),
            proxy_config=proxy_config,
        )

    def close(self) -> None:
        self.fetcher.close()
        self.summarizer.close()

    def ingest(self) -> Dict[str, Any]:
        """
        Load subscriptions and run one ingestion.

        Raises:
            SubscriptionError: If the subscription list is unusable
        """
        opml_path = self.config_manager.get_config_value("subscriptions.opml_path")
        sources = load_feed_sources(opml_path)
        if not sources:
            raise SubscriptionError(f"No feeds found in subscription list: {opml_path}")

        result = ingest_feeds(
            self.store,
            sources,
            self.fetcher,
            summarizer=self.summarizer,
            model=self.config_manager.get_config_value("enrichment.model", ""),
            enrichment_cutoff=self.config_manager.get_duration("enrichment.cutoff"),
        )
        return result.to_dict()

    def prune(self) -> Dict[str, Any]:
        return self.pruner.prune().to_dict()

    def write_output(self) -> str:
        return write_digest(
            self.store,
            mode=self.config_manager.get_config_value("output.mode", "html"),
            output_dir=self.config_manager.get_config_value("output.dir", "."),
            max_age=self.config_manager.get_duration("output.publish_cutoff"),
            timezone_name=self.config_manager.get_config_value("output.timezone"),
        )

    def run_collection(self, refresh: bool = True) -> Dict[str, Any]:
        """
        Run one full cycle: ingest (unless refresh is False), prune, write output.

        Ingestion and pruning run back to back in the same slot and each holds
        the store's write lock, so they never touch the store concurrently.

        Returns:
            dict: Summary statistics of the cycle
        """
        start_time = time.time()
        stats: Dict[str, Any] = {
            "sources": 0,
            "items_received": 0,
            "new_items": 0,
            "failed_sources": 0,
            "committed": None,
            "pruned": 0,
            "errors": 0,
        }

        with self._cycle_lock:
            if refresh:
                ingestion = self.ingest()
                stats.update({
                    "sources": ingestion["sources"],
                    "items_received": ingestion["items_received"],
                    "new_items": ingestion["new_items"],
                    "failed_sources": len(ingestion["failed_sources"]),
                    "committed": ingestion["committed"],
                })
                stats["errors"] += ingestion["item_errors"] + (0 if ingestion["committed"] else 1)

            try:
                prune_result = self.prune()
                stats["pruned"] = prune_result["deleted"]
                stats["errors"] += prune_result["errors"]
            except StoreError as e:
                logger.error(f"Pruning failed: {e}")
                stats["errors"] += 1

            try:
                digest = self.write_output()
                if self.digest_listener:
                    self.digest_listener(digest)
            except (StoreError, OSError, ValueError) as e:
                logger.error(f"Failed to write digest: {e}")
                stats["errors"] += 1

        stats["duration_seconds"] = time.time() - start_time
        log_collection_summary(logger, stats, stats["duration_seconds"])
        return stats


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Feed Collector - concurrent feed ingestion with a digest page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  feed-collector --run-now                         # Ingest, prune and write the digest once
  feed-collector --schedule                        # Repeat every schedule.refresh_interval
  feed-collector --run-now --no-refresh            # Rewrite the digest without fetching
  feed-collector --schedule --serve --port 8080     # Also serve the latest digest over HTTP
  feed-collector --config settings.json --opml feeds.opml --run-now
        """
    )
    parser.add_argument("--config", help="Path to settings JSON file (defaults are used when omitted)")
    parser.add_argument("--opml", help="Override subscriptions.opml_path")
    parser.add_argument("--db", help="Override storage.db_path")
    parser.add_argument("--output-mode", choices=["html", "markdown"], help="Override output.mode")
    parser.add_argument("--run-now", action="store_true", help="Run one collection cycle immediately")
    parser.add_argument("--schedule", action="store_true", help="Run collection cycles on the refresh interval")
    parser.add_argument("--serve", action="store_true", help="Serve the latest digest over HTTP while running on the schedule")
    parser.add_argument("--port", type=int, help="Override server.port")
    parser.add_argument("--no-refresh", action="store_true", help="Skip fetching feeds; only prune and write output")
    parser.add_argument("--prune-only", action="store_true", help="Only run the retention pruner")
    parser.add_argument("--migrate-keys", action="store_true", help="Re-key legacy v2 records and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"Feed Collector v{__version__}")

    return parser, parser.parse_args(argv)


def run_scheduler(collector: FeedCollector, config_manager: ConfigManager) -> None:
    scheduler = Scheduler(
        interval=config_manager.get_duration("schedule.refresh_interval"),
        collection_job_func=collector.run_collection,
    )
    logger.info("Starting scheduler - Press Ctrl+C to stop")
    scheduler.start()
    try:
        while scheduler.running:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped by user or system signal")
    finally:
        scheduler.stop()


def main(argv=None) -> int:
    """
    Main entry point for the script.
    """
    parser, args = parse_arguments(argv)

    try:
        config_manager = ConfigManager(args.config)
    except (FileNotFoundError, JSONDecodeError, TypeError, ValueError) as e:
        setup_logging(log_level="INFO", log_dir=None)
        logger.critical(f"Invalid configuration: {e}")
        return 1

    if args.opml:
        config_manager.set_config_value("subscriptions.opml_path", args.opml)
    if args.db:
        config_manager.set_config_value("storage.db_path", args.db)
    if args.output_mode:
        config_manager.set_config_value("output.mode", args.output_mode)
    if args.port is not None:
        config_manager.set_config_value("server.port", args.port)

    log_level = 'DEBUG' if args.debug else config_manager.get_config_value("logging.level", "INFO")
    setup_logging(log_level=log_level,
                  log_dir=config_manager.get_config_value("logging.log_dir"),
                  backup_count=config_manager.get_config_value("logging.backup_count", 7))

    if not (args.run_now or args.schedule or args.serve or args.prune_only or args.migrate_keys):
        logger.warning("No action specified. Use --run-now, --schedule, --serve, --prune-only or --migrate-keys")
        parser.print_help()
        return 0

    db_path = config_manager.get_config_value("storage.db_path")
    try:
        store = KVStore(db_path)
    except StoreError as e:
        logger.critical(f"Failed to open database: {e}")
        return 1

    collector = None
    server = None
    try:
        if args.migrate_keys:
            migrate_legacy_keys(store)
            return 0

        if args.serve:
            server = DigestServer(
                host=config_manager.get_config_value("server.host", ""),
                port=config_manager.get_config_value("server.port", 8173),
                mode=config_manager.get_config_value("output.mode", "html"),
            )
            try:
                server.start()
            except (OSError, OverflowError) as e:
                logger.critical(f"Failed to start digest server: {e}")
                return 1

        collector = FeedCollector(config_manager, store,
                                  digest_listener=server.update if server else None)

        if args.prune_only:
            logger.info(f"Prune summary: {json.dumps(collector.prune())}")
            return 0

        if args.run_now:
            stats = collector.run_collection(refresh=not args.no_refresh)
            logger.info(f"Collection summary: {json.dumps(stats, indent=2)}")

        if args.schedule or args.serve:
            run_scheduler(collector, config_manager)

        return 0

    except SubscriptionError as e:
        logger.critical(f"Failed to get feeds: {e}")
        return 1
    except FeedCollectorError as e:
        logger.critical(f"Collection failed: {e}", exc_info=True)
        return 1
    except (KeyboardInterrupt, SystemExit):
        logger.info("Process interrupted by user or system signal.")
        return 0
    finally:
        if server is not None:
            server.stop()
        if collector is not None:
            collector.close()
        store.close()


if __name__ == "__main__":
    sys.exit(main())
