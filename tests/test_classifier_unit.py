"""Unit tests for the fail-open content classifier."""

from dataclasses import replace
from unittest.mock import Mock, patch

import pytest
import requests
from hypothesis import given
from hypothesis import strategies as st

from feed_notifier.classifier import ContentClassifier, build_user_message, interpret_verdict
from feed_notifier.config import Config
from feed_notifier.models import FeedItem

READY_CONFIG = Config(
    enable_ai=True,
    ai_account="acc123",
    ai_token="secret-token",
    ai_model="@cf/meta/llama-3-8b-instruct",
    ai_prompt="Answer true if this is a sale post, otherwise false.",
)

ITEM = FeedItem(
    title="[出] HK VPS",
    link="https://lowendtalk.com/discussion/1",
    description="<p>2C4G <b>only</b> $5</p>",
)


def ok_response(result):
    response = Mock(status_code=200)
    response.json.return_value = {"result": result, "success": True}
    return response


class TestInterpretVerdict:
    """Unit tests for verdict parsing."""

    @pytest.mark.parametrize(
        "text, expected",
        [
            ("true", True),
            ("TRUE.", True),
            ("false", False),
            ("False - not a sale", False),
            ("true or false, hard to say", True),
            ("I cannot decide", True),
            ("", True),
            (None, True),
        ],
    )
    def test_verdicts(self, text, expected):
        assert interpret_verdict(text) is expected


class TestContentClassifier:
    """Unit tests for ContentClassifier."""

    def setup_method(self):
        self.classifier = ContentClassifier(timeout=15)

    @given(
        field=st.sampled_from(["ai_account", "ai_token", "ai_model", "ai_prompt"]),
        blank=st.sampled_from(["", "   "]),
        title=st.text(),
        description=st.text(),
    )
    def test_incomplete_config_allows_without_calling_out(
        self, field, blank, title, description
    ):
        """Any missing classifier field lets every item through."""
        config = replace(READY_CONFIG, **{field: blank})
        item = FeedItem(title=title, description=description)

        with patch.object(self.classifier.session, "post") as mock_post:
            assert self.classifier.classify(item, config) is True

        mock_post.assert_not_called()

    def test_request_shape(self):
        with patch.object(
            self.classifier.session, "post", return_value=ok_response({"response": "true"})
        ) as mock_post:
            assert self.classifier.classify(ITEM, READY_CONFIG) is True

        args, kwargs = mock_post.call_args
        assert args[0] == (
            "https://api.cloudflare.com/client/v4/accounts/acc123/ai/run/"
            "%40cf%2Fmeta%2Fllama-3-8b-instruct"
        )
        assert kwargs["headers"] == {"Authorization": "Bearer secret-token"}
        assert kwargs["timeout"] == 15
        messages = kwargs["json"]["messages"]
        assert messages[0] == {"role": "system", "content": READY_CONFIG.ai_prompt}
        assert messages[1]["role"] == "user"
        assert messages[1]["content"] == build_user_message(ITEM)
        assert "[出] HK VPS" in messages[1]["content"]
        assert "2C4G only $5" in messages[1]["content"]
        assert "<b>" not in messages[1]["content"]

    def test_false_verdict_rejects(self):
        with patch.object(
            self.classifier.session, "post", return_value=ok_response({"response": "False"})
        ):
            assert self.classifier.classify(ITEM, READY_CONFIG) is False

    def test_output_field_is_read(self):
        with patch.object(
            self.classifier.session, "post", return_value=ok_response({"output": "false"})
        ):
            assert self.classifier.classify(ITEM, READY_CONFIG) is False

    def test_missing_result_allows(self):
        response = Mock(status_code=200)
        response.json.return_value = {"success": False, "errors": []}
        with patch.object(self.classifier.session, "post", return_value=response):
            assert self.classifier.classify(ITEM, READY_CONFIG) is True

    @pytest.mark.parametrize(
        "error",
        [
            requests.Timeout("read timed out"),
            requests.ConnectionError("connection refused"),
        ],
    )
    def test_transport_errors_fail_open(self, error):
        with patch.object(self.classifier.session, "post", side_effect=error):
            assert self.classifier.classify(ITEM, READY_CONFIG) is True

    def test_http_error_fails_open(self):
        response = Mock(status_code=401)
        response.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
        with patch.object(self.classifier.session, "post", return_value=response):
            assert self.classifier.classify(ITEM, READY_CONFIG) is True

    def test_invalid_json_fails_open(self):
        response = Mock(status_code=200)
        response.json.side_effect = ValueError("Expecting value")
        with patch.object(self.classifier.session, "post", return_value=response):
            assert self.classifier.classify(ITEM, READY_CONFIG) is True
