"""Telegram notifier for the feed notifier."""

import json
import re
import urllib.error
import urllib.request

from .config import TelegramConfig
from .logging_config import create_execution_logger
from .models import FeedItem
from .rss import USER_AGENT, clean_html_content

MAX_DESCRIPTION_LENGTH = 800
ELLIPSIS = "..."

# An optional leading backslash is consumed so escaped text is not escaped again.
_MARKDOWN_RESERVED = re.compile(r"\\?([_*\[\]()~`>#+\-=|{}.!])")


def escape_markdown(text: str | None) -> str:
    """Escape MarkdownV2 reserved characters with a single backslash."""
    if not text:
        return ""
    return _MARKDOWN_RESERVED.sub(r"\\\1", text)


def truncate(text: str, max_length: int = MAX_DESCRIPTION_LENGTH) -> str:
    """Cut text to max_length characters, ellipsis included."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ELLIPSIS)] + ELLIPSIS


class TelegramNotifier:
    """Formats feed items and delivers them to a Telegram chat."""

    def __init__(self, config: TelegramConfig, execution_id: str | None = None):
        """Initialize Telegram notifier with configuration."""
        self.config = config
        self.logger = create_execution_logger("telegram_notifier", execution_id)
        self.base_url = f"https://api.telegram.org/bot{config.bot_token}"

        self.logger.info(
            "TelegramNotifier initialized",
            chat_id=config.chat_id,
            parse_mode=config.parse_mode,
        )

    def notify(self, item: FeedItem) -> bool:
        """Format and send one item. Returns True only on confirmed delivery."""
        return self.send(self.format_message(item))

    def format_message(self, item: FeedItem) -> str:
        """
        Format a MarkdownV2 message for a feed item.

        Args:
            item: The feed item to announce

        Returns:
            Message text with every interpolated field escaped
        """
        message = f"{escape_markdown(self.config.header)}\n\n"
        message += f"📌 *{escape_markdown(item.title or 'No title')}*\n"

        if item.pub_date:
            message += f"🕒 {escape_markdown(item.pub_date)}\n"

        if item.link:
            message += f"🔗 [打开帖子]({escape_markdown(item.link)})\n\n"
        else:
            message += "\n"

        description = clean_html_content(item.description)
        if description:
            message += escape_markdown(truncate(description))

        return message

    def send(self, text: str) -> bool:
        """
        Send message text to the Telegram API. No retry.

        Args:
            text: Formatted message to send

        Returns:
            True if Telegram accepted the message, False otherwise
        """
        if not self.config.bot_token or not self.config.chat_id:
            self.logger.error("Telegram bot token or chat id not set")
            return False

        data = {
            "chat_id": self.config.chat_id,
            "text": text,
            "parse_mode": self.config.parse_mode,
            "disable_web_page_preview": False,
        }
        req = urllib.request.Request(
            f"{self.base_url}/sendMessage",
            data=json.dumps(data).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
        )

        try:
            self.logger.debug(
                "Sending message to Telegram API", message_length=len(text)
            )
            with urllib.request.urlopen(req, timeout=self.config.timeout) as response:
                if 200 <= response.status < 300:
                    self.logger.info(
                        "Message sent successfully to Telegram",
                        status_code=response.status,
                    )
                    return True
                self.logger.error(
                    f"Telegram API returned status {response.status}",
                    status_code=response.status,
                )
                return False

        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", "replace") if e.fp else ""
            self.logger.error(
                f"HTTP error sending message: {e.code} - {e.reason}",
                http_code=e.code,
                http_reason=str(e.reason),
                response_body=body[:500],
            )
            return False

        except urllib.error.URLError as e:
            self.logger.error(
                f"URL error sending message: {e.reason}", error_reason=str(e.reason)
            )
            return False

        except TimeoutError as e:
            self.logger.error(f"Timed out sending message: {e}", error=str(e))
            return False

        except Exception as e:
            # Dropped connections surface here, not as URLError
            self.logger.error(
                f"Unexpected error sending message: {e}",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
