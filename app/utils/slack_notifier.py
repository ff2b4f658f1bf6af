import logging
from typing import Optional

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from app.config.config import settings


class SlackClient:
    def __init__(self, token: Optional[str] = None, channel_id: Optional[str] = None):
        """Initialize Slack client with bot token and default channel."""
        self.token = token or settings.SLACK_BOT_TOKEN
        if not self.token:
            raise ValueError("SLACK_BOT_TOKEN not found in environment variables")
        self.client = WebClient(token=self.token)
        self.channel_id = channel_id or settings.SLACK_CHANNEL

    def send_message(self, message: str, channel_id: Optional[str] = None) -> bool:
        """
        Send a message to a Slack channel.

        Args:
            message (str): The message text to send
            channel_id (str): The ID of the channel, defaults to the configured one

        Returns:
            bool: True if message was sent successfully, False otherwise
        """
        channel = channel_id or self.channel_id
        if not channel:
            logging.warning("SLACK_CHANNEL not set, dropping notification")
            return False
        try:
            self.client.chat_postMessage(channel=channel, text=message)
            return True
        except SlackApiError as e:
            logging.error(
                f"Slack error: {e.response['error']} (status {e.response.status_code})"
            )
            return False
        except Exception as e:
            logging.error(f"Unexpected Slack error: {e}")
            return False


def build_slack_notifier() -> Optional[SlackClient]:
    """Return a notifier when a bot token is configured, otherwise None."""
    if not settings.SLACK_BOT_TOKEN:
        return None
    return SlackClient()
