from unittest.mock import MagicMock, patch

import pytest
from slack_sdk.errors import SlackApiError

from app.utils import slack_notifier
from app.utils.slack_notifier import SlackClient, build_slack_notifier


def test_no_notifier_without_token(monkeypatch):
    monkeypatch.setattr(slack_notifier.settings, "SLACK_BOT_TOKEN", None)
    assert build_slack_notifier() is None
    with pytest.raises(ValueError):
        SlackClient()


def test_send_message_posts_to_default_channel():
    with patch("app.utils.slack_notifier.WebClient") as web_client:
        client = SlackClient(token="xoxb-test", channel_id="C123")
        assert client.send_message("Crawl job failed") is True
    web_client.return_value.chat_postMessage.assert_called_once_with(channel="C123", text="Crawl job failed")


def test_send_message_without_channel_is_dropped(monkeypatch):
    monkeypatch.setattr(slack_notifier.settings, "SLACK_CHANNEL", None)
    with patch("app.utils.slack_notifier.WebClient") as web_client:
        assert SlackClient(token="xoxb-test").send_message("hello") is False
    web_client.return_value.chat_postMessage.assert_not_called()


def test_send_message_swallows_slack_errors():
    response = MagicMock()
    response.status_code = 403
    response.__getitem__.side_effect = lambda key: {"error": "not_in_channel"}[key]
    with patch("app.utils.slack_notifier.WebClient") as web_client:
        web_client.return_value.chat_postMessage.side_effect = SlackApiError("failed", response)
        assert SlackClient(token="xoxb-test", channel_id="C123").send_message("hello") is False
