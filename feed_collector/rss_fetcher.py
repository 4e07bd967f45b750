"""
rss_fetcher.py - Module for downloading feeds using requests and proxy.
"""

import logging
import time
from typing import Optional

import requests
from user_agent import generate_user_agent

from .exceptions import FetchError
from .models import ParsedFeed
from .rss_parser import RSSParser
from .utils.proxy_utils import ProxyConfig, create_proxy_aware_session

logger = logging.getLogger(__name__)


class RSSFetcher:
    """
    Downloads feeds with a requests session (with proxy support) and hands
    the body to RSSParser. One instance is shared by every fetch worker.
    """

    def __init__(self, timeout: float = 30,
                 proxy_config: Optional[ProxyConfig] = None,
                 user_agent: Optional[str] = None,
                 parser: Optional[RSSParser] = None):
        """
        Initialize the RSS Fetcher with configuration and dependencies.

        Args:
            timeout (float): Request timeout in seconds.
            proxy_config (Optional[ProxyConfig]): Proxy configuration.
            user_agent (Optional[str]): Fixed User-Agent; a generated one is used when omitted.
            parser (Optional[RSSParser]): Parser for fetched content.
        """
        self.timeout = timeout
        self.proxy_config = proxy_config
        self.user_agent = user_agent or generate_user_agent()
        self.parser = parser or RSSParser()
        self.session = create_proxy_aware_session(self.proxy_config, self.user_agent)

        logger.debug("RSSFetcher initialized with requests session and parser")

    def close(self) -> None:
        self.session.close()

    def _fetch_raw_content(self, url: str) -> bytes:
        """
        Fetch raw feed content from the given URL. No retries are attempted.

        Raises:
            FetchError: On network errors, timeouts and HTTP error statuses
        """
        headers = {
            'Accept': 'application/rss+xml, application/atom+xml, application/xml, text/xml;q=0.9, */*;q=0.8',
        }

        start_time = time.time()
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise FetchError(url, f"Timed out after {self.timeout}s: {e}") from e
        except requests.exceptions.HTTPError as e:
            raise FetchError(url, f"HTTP {e.response.status_code}") from e
        except requests.exceptions.RequestException as e:
            raise FetchError(url, f"Request failed: {e}") from e

        logger.debug(f"Fetched {url}: {len(response.content)} bytes in {time.time() - start_time:.2f}s")
        return response.content

    def fetch_feed(self, url: str) -> ParsedFeed:
        """
        Download and parse one feed.

        Args:
            url (str): Feed URL

        Returns:
            ParsedFeed: Feed title and raw entries

        Raises:
            FetchError: If downloading or parsing fails
        """
        raw_content = self._fetch_raw_content(url)
        return self.parser.parse(raw_content, url)
