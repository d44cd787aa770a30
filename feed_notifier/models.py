"""Data models for the feed notifier."""

from dataclasses import dataclass
from enum import Enum


@dataclass
class FeedItem:
    """Represents a single RSS feed item."""

    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""
    guid: str = ""
    feed_url: str = ""

    @property
    def identity(self) -> str | None:
        """Stable dedup key: link, then guid, then title."""
        return self.link or self.guid or self.title or None


@dataclass(frozen=True)
class KeywordRule:
    """Compiled keyword rule: OR across groups, AND within a group."""

    groups: tuple[tuple[str, ...], ...] = ()

    def __bool__(self) -> bool:
        return bool(self.groups)

    def __str__(self) -> str:
        return ",".join("+".join(group) for group in self.groups)


class ItemOutcome(str, Enum):
    """Terminal state of one item in a pipeline run."""

    UNIDENTIFIABLE = "unidentifiable"
    DEDUPED = "deduped"
    KEYWORD_REJECTED = "keyword_rejected"
    CLASSIFIER_REJECTED = "classifier_rejected"
    SEND_FAILED = "send_failed"
    SENT = "sent"
    ERROR = "error"
