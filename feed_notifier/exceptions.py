"""Exceptions raised by the feed notifier pipeline."""


class NotifierError(Exception):
    """Base class for pipeline errors."""


class SourceUnavailable(NotifierError):
    """A feed source could not be fetched (network error, timeout, bad status)."""

    def __init__(self, feed_url: str, reason: str):
        self.feed_url = feed_url
        self.reason = reason
        super().__init__(f"Feed source unavailable {feed_url}: {reason}")


class ClassifierUnavailable(NotifierError):
    """The remote content classifier could not produce a verdict."""
