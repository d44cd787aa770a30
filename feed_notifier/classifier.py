"""Optional remote content classifier (Cloudflare Workers AI).

Every failure path lets the item through: a broken classifier must never
silently suppress notifications.
"""

from urllib.parse import quote

import requests

from .config import Config
from .exceptions import ClassifierUnavailable
from .logging_config import create_execution_logger
from .models import FeedItem
from .rss import clean_html_content

API_BASE = "https://api.cloudflare.com/client/v4/accounts"


def build_user_message(item: FeedItem) -> str:
    """User turn sent to the model: title plus HTML-stripped description."""
    return (
        f"标题：{item.title}\n\n"
        f"内容：{clean_html_content(item.description)}\n\n"
        "请根据提示词判断。"
    )


def interpret_verdict(text) -> bool:
    """Map the model's answer to allow/reject.

    "true" allows, otherwise "false" rejects; anything else allows.
    """
    text = str(text or "").lower()
    if "true" in text:
        return True
    if "false" in text:
        return False
    return True


class ContentClassifier:
    """Semantic filter backed by a hosted LLM, fail-open."""

    def __init__(self, timeout: float = 15, execution_id: str | None = None):
        """Initialize the classifier.

        Args:
            timeout: HTTP request timeout in seconds
            execution_id: Execution ID for logging context
        """
        self.timeout = timeout
        self.logger = create_execution_logger("classifier", execution_id)
        self.session = requests.Session()

    def classify(self, item: FeedItem, config: Config) -> bool:
        """Return True if the item may be delivered."""
        if not config.classifier_ready:
            self.logger.debug(
                "Classifier configuration incomplete, allowing item",
                item_title=item.title,
            )
            return True

        try:
            verdict_text = self.request_verdict(item, config)
        except ClassifierUnavailable as e:
            self.logger.error(
                f"Classifier unavailable, allowing item: {e}",
                item_title=item.title,
                error=str(e),
            )
            return True

        allowed = interpret_verdict(verdict_text)
        self.logger.info(
            "Classifier verdict",
            item_title=item.title,
            allowed=allowed,
            verdict=str(verdict_text)[:200],
        )
        return allowed

    def request_verdict(self, item: FeedItem, config: Config) -> str:
        """Call the inference endpoint and return the raw answer text.

        Raises:
            ClassifierUnavailable: On transport errors, timeouts, non-success
                status or an undecodable body
        """
        url = f"{API_BASE}/{config.ai_account}/ai/run/{quote(config.ai_model, safe='')}"
        payload = {
            "messages": [
                {"role": "system", "content": config.ai_prompt},
                {"role": "user", "content": build_user_message(item)},
            ]
        }

        try:
            response = self.session.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {config.ai_token}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            raise ClassifierUnavailable(str(e)) from e
        except ValueError as e:
            raise ClassifierUnavailable(f"Invalid JSON response: {e}") from e

        result = data.get("result") if isinstance(data, dict) else None
        if not isinstance(result, dict):
            return ""
        return result.get("response") or result.get("output") or ""
