"""Unit tests for feed fetching and parsing."""

from unittest.mock import Mock, patch

import pytest
import requests

from feed_notifier.exceptions import SourceUnavailable
from feed_notifier.models import FeedItem
from feed_notifier.rss import USER_AGENT, FeedFetcher, FeedParser, clean_html_content

SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>LowEndTalk</title>
    <link>https://lowendtalk.com/</link>
    <description>Discussions</description>
    <item>
      <title><![CDATA[ [出] 2C4G VPS 促销 ]]></title>
      <link>https://lowendtalk.com/discussion/1001/sale</link>
      <description><![CDATA[<p>Cheap <b>VPS</b> offer</p>]]></description>
      <pubDate>Mon, 01 Jan 2024 10:00:00 +0000</pubDate>
      <guid isPermaLink="false">1001@/discussions</guid>
    </item>
    <item>
      <title>Looking for a host</title>
      <link>https://lowendtalk.com/discussion/1002/wanted</link>
    </item>
  </channel>
</rss>
"""


class TestFeedParser:
    """Unit tests for FeedParser."""

    def setup_method(self):
        self.parser = FeedParser()

    def test_parses_all_fields(self):
        items = list(self.parser.parse(SAMPLE_FEED.encode("utf-8"), "https://lowendtalk.com/feed"))

        assert len(items) == 2
        first = items[0]
        assert isinstance(first, FeedItem)
        assert first.title == "[出] 2C4G VPS 促销"
        assert first.link == "https://lowendtalk.com/discussion/1001/sale"
        assert clean_html_content(first.description) == "Cheap VPS offer"
        assert "CDATA" not in first.description
        assert first.pub_date == "Mon, 01 Jan 2024 10:00:00 +0000"
        assert first.guid == "1001@/discussions"
        assert first.feed_url == "https://lowendtalk.com/feed"

    def test_missing_tags_become_empty_strings(self):
        second = list(self.parser.parse(SAMPLE_FEED))[1]

        assert second.title == "Looking for a host"
        assert second.link == "https://lowendtalk.com/discussion/1002/wanted"
        assert second.description == ""
        assert second.pub_date == ""
        assert second.guid == ""

    def test_item_without_any_identity(self):
        doc = "<rss><channel><item><description>orphan</description></item></channel></rss>"

        items = list(self.parser.parse(doc))

        assert len(items) == 1
        assert items[0].identity is None

    @pytest.mark.parametrize("raw", [b"", b"not a feed at all", b"\x00\xff\xfe", "{}"])
    def test_unparseable_input_yields_nothing(self, raw):
        assert list(self.parser.parse(raw)) == []

    def test_result_is_consumed_once(self):
        items = self.parser.parse(SAMPLE_FEED)

        assert len(list(items)) == 2
        assert list(items) == []

    def test_broken_entry_is_skipped(self):
        with patch.object(
            self.parser,
            "normalize_item",
            side_effect=[ValueError("bad entry"), FeedItem(title="ok")],
        ):
            items = list(self.parser.parse(SAMPLE_FEED))

        assert items == [FeedItem(title="ok")]


class TestFeedFetcher:
    """Unit tests for FeedFetcher."""

    def setup_method(self):
        self.fetcher = FeedFetcher(timeout=10)

    def test_sends_fixed_user_agent(self):
        assert self.fetcher.session.headers["User-Agent"] == USER_AGENT

    def test_returns_body_on_success(self):
        response = Mock(status_code=200, content=b"<rss/>")
        with patch.object(self.fetcher.session, "get", return_value=response) as mock_get:
            assert self.fetcher.fetch("https://example.com/feed") == b"<rss/>"

        mock_get.assert_called_once_with("https://example.com/feed", timeout=10)

    def test_http_error_raises_source_unavailable(self):
        response = Mock(status_code=503, content=b"")
        response.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
        with patch.object(self.fetcher.session, "get", return_value=response):
            with pytest.raises(SourceUnavailable) as exc_info:
                self.fetcher.fetch("https://example.com/feed")

        assert exc_info.value.feed_url == "https://example.com/feed"
        assert "503" in exc_info.value.reason

    @pytest.mark.parametrize(
        "error", [requests.Timeout("timed out"), requests.ConnectionError("refused")]
    )
    def test_network_errors_raise_source_unavailable(self, error):
        with patch.object(self.fetcher.session, "get", side_effect=error):
            with pytest.raises(SourceUnavailable):
                self.fetcher.fetch("https://example.com/feed")


class TestCleanHtmlContent:
    """Unit tests for HTML stripping."""

    def test_html_cleaning_specific_cases(self):
        test_cases = [
            ("<p>Simple paragraph</p>", "Simple paragraph"),
            ("<div><h1>Title</h1><p>Content</p></div>", "Title Content"),
            ("<script>alert('xss')</script><p>Safe content</p>", "Safe content"),
            ("<style>body{color:red}</style><p>Styled content</p>", "Styled content"),
            ("Plain text without HTML", "Plain text without HTML"),
            ("<p>Multiple  \n\n  spaces   and\tlines</p>", "Multiple spaces and lines"),
        ]

        for html_input, expected_output in test_cases:
            assert clean_html_content(html_input) == expected_output, html_input

    def test_empty_content(self):
        assert clean_html_content("") == ""
        assert clean_html_content(None) == ""
        assert clean_html_content("   ") == ""
        assert clean_html_content("<p><br/></p>") == ""
