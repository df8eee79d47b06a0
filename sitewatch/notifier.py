"""Chat webhook delivery of a run's alerts and recoveries."""

import logging
import time
from datetime import UTC, datetime

import requests

from .config import AlertsConfig

logger = logging.getLogger(__name__)

# Discord rejects message content longer than this.
MAX_CONTENT_LENGTH = 2000


def build_message(alert_lines: list[str], recoveries: list[dict]) -> str | None:
    """Build the chat message for a run.

    Args:
        alert_lines: DOWN/SLOW lines from the alerts report.
        recoveries: Entries of the recovery report.

    Returns:
        Message text, or None when there is nothing to send.
    """
    lines = list(alert_lines)
    for recovery in recoveries:
        url = recovery.get("url", "?")
        if recovery.get("durationText"):
            lines.append(f"RECOVERED: {url} (down for {recovery['durationText']})")
        else:
            lines.append(f"RECOVERED: {url} (was {recovery.get('recoveredFrom', 'unknown')})")

    if not lines:
        return None

    content = "\n".join(lines)
    if len(content) > MAX_CONTENT_LENGTH:
        content = content[: MAX_CONTENT_LENGTH - 3] + "..."
    return content


class Notifier:
    """Posts messages to the configured webhook (with retries)."""

    def __init__(self, config: AlertsConfig, max_retries: int = 3, retry_delay: int = 2):
        """Initialize notifier with configuration.

        Args:
            config: Alerts configuration with the webhook URL
            max_retries: Maximum number of retry attempts for failed posts
            retry_delay: Base delay in seconds between retries (increases exponentially)
        """
        self._config = config
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    @property
    def enabled(self) -> bool:
        return bool(self._config.webhook_url)

    def send(self, content: str) -> bool:
        """Send a message to the webhook.

        Args:
            content: Message text

        Returns:
            True if the webhook accepted the message, False otherwise
        """
        if not self._config.webhook_url:
            logger.error("No webhook URL configured, cannot send alert")
            return False

        payload = {"content": content, "username": self._config.username}
        retry_count = 0

        while retry_count <= self._max_retries:
            try:
                response = requests.post(
                    self._config.webhook_url,
                    json=payload,
                    timeout=self._config.timeout_seconds,
                )
                response.raise_for_status()

                logger.info("Webhook alert sent (%d characters)", len(content))
                return True

            except requests.RequestException as e:
                retry_count += 1
                if retry_count <= self._max_retries:
                    delay = self._retry_delay * (2 ** (retry_count - 1))
                    logger.warning(
                        "Webhook failed (attempt %d/%d, retrying in %ds): %s",
                        retry_count,
                        self._max_retries + 1,
                        delay,
                        e,
                    )
                    time.sleep(delay)
                else:
                    logger.error("Webhook failed after %d attempts: %s", retry_count, e)

        return False

    def send_test(self) -> bool:
        """Send a test message to verify the webhook configuration."""
        return self.send(f"SiteWatch test alert ({datetime.now(UTC).isoformat()})")
