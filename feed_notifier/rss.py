"""RSS feed fetching and parsing for the feed notifier."""

import io
from collections.abc import Iterator

import feedparser
import requests
from bs4 import BeautifulSoup

from .exceptions import SourceUnavailable
from .logging_config import create_execution_logger
from .models import FeedItem

USER_AGENT = "LowEndTalk-TGBot/1.0 (+feed-notifier)"


class FeedFetcher:
    """Retrieves raw feed documents over HTTP."""

    def __init__(self, timeout: float = 10, execution_id: str | None = None):
        """Initialize FeedFetcher with configuration.

        Args:
            timeout: HTTP request timeout in seconds
            execution_id: Execution ID for logging context
        """
        self.timeout = timeout
        self.logger = create_execution_logger("feed_fetcher", execution_id)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

        self.logger.info("FeedFetcher initialized", timeout=timeout)

    def fetch(self, feed_url: str) -> bytes:
        """Download a feed document.

        Args:
            feed_url: URL of the RSS feed

        Returns:
            Raw response body

        Raises:
            SourceUnavailable: On network error, timeout or non-success status
        """
        self.logger.info("Downloading feed content", feed_url=feed_url)
        try:
            response = self.session.get(feed_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            self.logger.error(
                f"Failed to download feed {feed_url}: {e}",
                feed_url=feed_url,
                error=str(e),
            )
            raise SourceUnavailable(feed_url, str(e)) from e

        self.logger.info(
            "Feed downloaded successfully",
            feed_url=feed_url,
            status_code=response.status_code,
            content_length=len(response.content),
        )
        return response.content


class FeedParser:
    """Extracts FeedItems from a raw feed document.

    Parsing degrades per field: a missing or malformed tag becomes an empty
    string, a broken entry is skipped, and unparseable input yields no items.
    """

    def __init__(self, execution_id: str | None = None):
        self.logger = create_execution_logger("feed_parser", execution_id)

    def parse(self, raw: bytes | str, feed_url: str = "") -> Iterator[FeedItem]:
        """Yield the items of a feed document.

        Args:
            raw: Feed document as returned by FeedFetcher.fetch
            feed_url: Source feed URL, kept on each item for logging

        Yields:
            FeedItem objects in document order
        """
        if isinstance(raw, str):
            raw = raw.encode("utf-8")

        try:
            # A stream keeps feedparser from treating the input as a URL or path
            feed = feedparser.parse(io.BytesIO(raw or b""))
        except Exception as e:
            self.logger.error(
                f"Unparseable feed document from {feed_url}: {e}",
                feed_url=feed_url,
                error=str(e),
            )
            return

        if feed.bozo and hasattr(feed, "bozo_exception"):
            self.logger.warning(
                f"Feed parsing warning for {feed_url}: {feed.bozo_exception}",
                feed_url=feed_url,
                bozo_exception=str(feed.bozo_exception),
            )

        for entry in feed.entries:
            try:
                yield self.normalize_item(entry, feed_url)
            except Exception as e:
                self.logger.warning(
                    f"Failed to normalize entry from {feed_url}: {e}",
                    feed_url=feed_url,
                    error=str(e),
                )
                continue

    def normalize_item(self, entry, feed_url: str = "") -> FeedItem:
        """Normalize a feedparser entry into a FeedItem."""
        description = entry.get("summary") or entry.get("description")
        return FeedItem(
            title=_field(entry.get("title")),
            link=_field(entry.get("link")),
            description=_field(description),
            pub_date=_field(entry.get("published")),
            guid=_field(entry.get("id")),
            feed_url=feed_url,
        )


def _field(value) -> str:
    if not isinstance(value, str):
        return ""
    return value.replace("<![CDATA[", "").replace("]]>", "").strip()


def clean_html_content(content: str | None) -> str:
    """Remove HTML tags from content and normalize whitespace.

    Args:
        content: Raw content that may contain HTML

    Returns:
        Clean text content without HTML tags
    """
    if not content:
        return ""

    if "<" in content and ">" in content:
        soup = BeautifulSoup(content, "html.parser")
        for script in soup(["script", "style"]):
            script.decompose()
        content = soup.get_text(separator=" ")

    return " ".join(content.split())
