"""Configuration management for the feed notifier."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import boto3

from .logging_config import create_execution_logger

DEFAULT_FEEDS = ["https://lowendtalk.com/discussions/feed.rss"]
DEFAULT_HEADER = "🆕 LowEndTalk 新帖子"

# Key of the control-plane document in the shared table.
CONFIG_KEY = "config"


@dataclass(frozen=True)
class Config:
    """Filter configuration for one run, written by the control panel."""

    enable_keyword: bool = False
    keyword_rule: str = ""
    enable_ai: bool = False
    ai_account: str = ""
    ai_token: str = ""
    ai_model: str = ""
    ai_prompt: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Config":
        """Build a Config from the panel's JSON document."""
        data = data or {}
        return cls(
            enable_keyword=bool(data.get("enable_keyword")),
            keyword_rule=str(data.get("keywords") or ""),
            enable_ai=bool(data.get("enable_ai")),
            ai_account=str(data.get("cf_account") or ""),
            ai_token=str(data.get("cf_token") or ""),
            ai_model=str(data.get("ai_model") or ""),
            ai_prompt=str(data.get("ns_prompt") or ""),
        )

    @property
    def classifier_ready(self) -> bool:
        """True when every field the classifier needs is present."""
        return all(
            value.strip()
            for value in (self.ai_account, self.ai_token, self.ai_model, self.ai_prompt)
        )


@dataclass
class TelegramConfig:
    """Configuration for Telegram Bot API."""

    bot_token: str
    chat_id: str
    parse_mode: str = "MarkdownV2"
    timeout: float = 10.0
    header: str = DEFAULT_HEADER


class Settings:
    """Deployment settings read from the environment."""

    FEEDS_FILE = "feeds.json"

    def __init__(self):
        """Initialize settings from environment variables."""
        self.telegram_secret_name = os.getenv(
            "TELEGRAM_SECRET_NAME", "feed-notifier-bot-token"
        )
        self.chat_id = os.getenv("TELEGRAM_CHAT_ID", "")
        self.dynamodb_table = os.getenv("DYNAMODB_TABLE", "feed-notifier-state")
        self.aws_region = os.getenv(
            "CURRENT_AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        )
        self.message_header = os.getenv("MESSAGE_HEADER", DEFAULT_HEADER)
        self.fetch_timeout = float(os.getenv("FETCH_TIMEOUT", "10"))
        self.notify_timeout = float(os.getenv("NOTIFY_TIMEOUT", "10"))
        self.classify_timeout = float(os.getenv("CLASSIFY_TIMEOUT", "15"))
        # Longer than the Lambda timeout: a live run never loses the lease,
        # a crashed one frees it on expiry
        self.lease_ttl_seconds = int(os.getenv("LEASE_TTL_SECONDS", "600"))

    def get_feed_urls(self) -> list[str]:
        """Get feed URLs from FEED_URLS, then feeds.json, then the defaults."""
        env_feeds = os.getenv("FEED_URLS", "")
        if env_feeds.strip():
            return [url.strip() for url in env_feeds.split(",") if url.strip()]

        feeds_file = Path(self.FEEDS_FILE)
        if not feeds_file.exists():
            # Lambda root directory
            feeds_file = Path("/var/task") / self.FEEDS_FILE

        if not feeds_file.exists():
            return list(DEFAULT_FEEDS)

        try:
            with open(feeds_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in feeds file: {e}") from e

        enabled_urls = [
            feed["url"]
            for feed in data.get("feeds", [])
            if feed.get("enabled", True) and "url" in feed
        ]
        if not enabled_urls:
            raise ValueError("No enabled feeds found in feeds.json")
        return enabled_urls

    def get_telegram_config(self) -> TelegramConfig:
        """Get Telegram configuration."""
        # Token is filled in from Secrets Manager at runtime
        return TelegramConfig(
            bot_token="",
            chat_id=self.chat_id,
            timeout=self.notify_timeout,
            header=self.message_header,
        )


def load_config(
    table_name: str, aws_region: str, execution_id: str | None = None
) -> Config:
    """Read the panel's filter configuration from the shared table.

    A missing document yields the all-disabled default. Store errors propagate:
    running with a guessed configuration could flood the channel.
    """
    logger = create_execution_logger("config", execution_id)
    table = boto3.resource("dynamodb", region_name=aws_region).Table(table_name)
    response = table.get_item(Key={"item_id": CONFIG_KEY})

    raw = response.get("Item", {}).get("value")
    if not raw:
        logger.warning("No filter configuration stored, using defaults")
        return Config()

    try:
        data = json.loads(raw) if isinstance(raw, str) else dict(raw)
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        raise ValueError(f"Invalid filter configuration document: {e}") from e

    config = Config.from_dict(data)
    logger.info(
        "Filter configuration loaded",
        enable_keyword=config.enable_keyword,
        enable_ai=config.enable_ai,
        classifier_ready=config.classifier_ready,
    )
    return config
