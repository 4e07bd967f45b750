"""
Exception hierarchy for Feed Collector.

Every failure the pipeline can isolate has its own type so callers can log
it and carry on with the unaffected sources and items.
"""


class FeedCollectorError(Exception):
    """Base class for all Feed Collector errors."""


class SubscriptionError(FeedCollectorError):
    """The subscription list could not be read or contains no feeds."""


class SourceError(FeedCollectorError):
    """A feed source is malformed (e.g. its URL lacks a scheme or host)."""


class FetchError(FeedCollectorError):
    """Downloading or parsing one feed failed."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{url}: {message}")


class StoreError(FeedCollectorError):
    """A key-value store lookup, write or commit failed."""


class EnrichmentError(FeedCollectorError):
    """Generating a summary for an item failed."""


class InvalidLinkError(EnrichmentError):
    """The link to summarize is empty or not http/https."""


class EnrichmentNetworkError(EnrichmentError):
    """The summary service could not be reached or answered with an error."""


class EnrichmentTimeoutError(EnrichmentError):
    """The summary service did not answer within the configured timeout."""


class IncompleteResponseError(EnrichmentError):
    """The summary service answered but signalled it had not finished."""
