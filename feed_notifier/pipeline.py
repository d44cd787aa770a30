"""Feed-to-Telegram pipeline: fetch, parse, dedup, filter, classify, notify."""

from collections.abc import Callable, Iterable
from typing import Any

from .classifier import ContentClassifier
from .config import Config
from .dedup import DedupStore
from .exceptions import SourceUnavailable
from .keywords import compile_rule, keyword_filter_passes
from .logging_config import create_execution_logger
from .models import FeedItem, ItemOutcome, KeywordRule
from .rss import FeedFetcher, FeedParser
from .telegram import TelegramNotifier


def new_metrics() -> dict[str, Any]:
    """Counters for one run."""
    metrics: dict[str, Any] = {
        "feeds_processed": 0,
        "feeds_failed": 0,
        "items_found": 0,
        "errors": [],
        "cancelled": False,
    }
    for outcome in ItemOutcome:
        metrics[outcome.value] = 0
    return metrics


class Pipeline:
    """Drives one run across all configured feed sources.

    Sources and items are processed strictly one at a time. Each item moves
    through the checks in cost order: dedup, keyword filter, classifier, send.
    Only a confirmed send is recorded in the dedup store.
    """

    def __init__(
        self,
        fetcher: FeedFetcher,
        parser: FeedParser,
        dedup_store: DedupStore,
        notifier: TelegramNotifier,
        classifier: ContentClassifier | None = None,
        execution_id: str | None = None,
    ):
        self.fetcher = fetcher
        self.parser = parser
        self.dedup_store = dedup_store
        self.notifier = notifier
        self.classifier = classifier
        self.logger = create_execution_logger("pipeline", execution_id)

    def run(
        self,
        feed_urls: Iterable[str],
        config: Config,
        should_cancel: Callable[[], bool] | None = None,
    ) -> dict[str, Any]:
        """Process every feed once and return the run metrics."""
        metrics = new_metrics()
        rule = compile_rule(config.keyword_rule)
        should_cancel = should_cancel or (lambda: False)

        self.logger.log_execution_start(
            enable_keyword=config.enable_keyword,
            keyword_groups=len(rule.groups),
            enable_ai=config.enable_ai,
        )

        for feed_url in feed_urls:
            if should_cancel():
                metrics["cancelled"] = True
                break
            try:
                self.process_source(feed_url, config, rule, metrics, should_cancel)
            except Exception as e:
                error_msg = f"Failed to process feed {feed_url}: {e}"
                self.logger.error(error_msg, feed_url=feed_url, exc_info=True)
                metrics["feeds_failed"] += 1
                metrics["errors"].append(error_msg)
            if metrics["cancelled"]:
                break

        if metrics["cancelled"]:
            self.logger.warning("Run cancelled before completion")

        self.logger.log_metrics(metrics)
        self.logger.log_execution_end(success=not metrics["errors"])
        return metrics

    def process_source(
        self,
        feed_url: str,
        config: Config,
        rule: KeywordRule,
        metrics: dict[str, Any],
        should_cancel: Callable[[], bool],
    ) -> None:
        """Fetch one feed and run each of its items through the pipeline."""
        try:
            raw = self.fetcher.fetch(feed_url)
        except SourceUnavailable as e:
            self.logger.warning(f"Skipping source: {e}", feed_url=feed_url)
            metrics["feeds_failed"] += 1
            metrics["errors"].append(str(e))
            return

        items_count = 0
        completed = True
        for item in self.parser.parse(raw, feed_url):
            if should_cancel():
                metrics["cancelled"] = True
                completed = False
                break
            items_count += 1
            outcome = self.process_item(item, config, rule)
            metrics[outcome.value] += 1
            if outcome is ItemOutcome.ERROR:
                metrics["errors"].append(f"Failed to process item '{item.title}'")

        # A source abandoned by cancellation is not counted as processed
        if completed:
            metrics["feeds_processed"] += 1
        metrics["items_found"] += items_count
        self.logger.log_feed_processing(feed_url, items_count)

    def process_item(
        self, item: FeedItem, config: Config, rule: KeywordRule
    ) -> ItemOutcome:
        """Move one item to its terminal state. Never raises."""
        try:
            outcome = self._advance(item, config, rule)
        except Exception as e:
            self.logger.error(
                f"Failed to process item '{item.title}': {e}",
                item_title=item.title,
                feed_url=item.feed_url,
                exc_info=True,
            )
            return ItemOutcome.ERROR

        self.logger.log_item_outcome(item.title, outcome.value, feed_url=item.feed_url)
        return outcome

    def _advance(self, item: FeedItem, config: Config, rule: KeywordRule) -> ItemOutcome:
        identity = item.identity
        if not identity:
            return ItemOutcome.UNIDENTIFIABLE

        if self.dedup_store.seen(identity):
            return ItemOutcome.DEDUPED

        if not keyword_filter_passes(config, rule, item):
            return ItemOutcome.KEYWORD_REJECTED

        if config.enable_ai and self.classifier is not None:
            if not self.classifier.classify(item, config):
                return ItemOutcome.CLASSIFIER_REJECTED

        if not self.notifier.notify(item):
            return ItemOutcome.SEND_FAILED

        self.dedup_store.mark_sent(identity)
        return ItemOutcome.SENT
