"""
Summary enrichment for newly ingested items.

The ingestion coordinator only knows the `summarize(link, model)` call.
NullSummarizer is used when enrichment is disabled and never touches the
network; OllamaSummarizer asks an Ollama server for a short summary.
"""
import logging
from typing import Optional

import requests

from .exceptions import (
    EnrichmentNetworkError,
    EnrichmentTimeoutError,
    IncompleteResponseError,
    InvalidLinkError,
)
from .utils.helpers import is_http_url
from .utils.proxy_utils import ProxyConfig, create_proxy_aware_session

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = "Create a two sentence summary of {link}"


class NullSummarizer:
    """Enrichment disabled: produces nothing and does no I/O."""

    enabled = False

    def summarize(self, link: str, model: str) -> Optional[str]:
        return None

    def close(self) -> None:
        pass


class OllamaSummarizer:
    """
    Generates item summaries through Ollama's /api/generate endpoint.
    """

    enabled = True

    def __init__(self, base_url: str = "http://localhost:11434", timeout: float = 60,
                 proxy_config: Optional[ProxyConfig] = None):
        """
        Args:
            base_url: Ollama server URL
            timeout: Seconds to wait for a complete answer; must be positive
            proxy_config: Optional proxy for the summary requests

        Raises:
            ValueError: If the timeout is not positive
        """
        if not timeout or timeout <= 0:
            raise ValueError("Summary requests need a positive timeout")

        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = create_proxy_aware_session(proxy_config)

    def close(self) -> None:
        self.session.close()

    def summarize(self, link: str, model: str) -> str:
        """
        Ask the model for a two sentence summary of the linked article.

        Args:
            link: Absolute http(s) link of the item
            model: Ollama model name

        Returns:
            Summary text

        Raises:
            InvalidLinkError: Empty or non-http(s) link
            EnrichmentTimeoutError: No answer within the timeout
            EnrichmentNetworkError: Connection failure or HTTP error status
            IncompleteResponseError: Server answered without finishing
        """
        if not is_http_url(link):
            raise InvalidLinkError(f"Cannot summarize link {link!r}")

        payload = {
            "model": model,
            "prompt": SUMMARY_PROMPT.format(link=link),
            "stream": False,
        }

        logger.info(f"Generating summary for {link} with {model}")
        try:
            response = self.session.post(f"{self.base_url}/api/generate", json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            raise EnrichmentTimeoutError(f"Summary request for {link} timed out after {self.timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise EnrichmentNetworkError(f"Summary request for {link} failed: {e}") from e

        try:
            result = response.json()
        except ValueError as e:
            raise IncompleteResponseError(f"Summary response for {link} is not JSON: {e}") from e

        if not isinstance(result, dict) or not result.get("done", False):
            raise IncompleteResponseError(f"Summary for {link} did not complete")

        summary = result.get("response")
        if not isinstance(summary, str):
            raise IncompleteResponseError(f"Summary for {link} is not text: {type(summary).__name__}")
        summary = summary.strip()
        if not summary:
            raise IncompleteResponseError(f"Summary for {link} is empty")
        return summary
