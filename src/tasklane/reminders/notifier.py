# src/tasklane/reminders/notifier.py

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

CHANNELS = ("email", "sms")


class LogNotificationSink:
    """NotificationSink that only writes to the log. Default when no webhook is configured."""

    async def publish(
        self,
        *,
        channel: str,
        recipient: str,
        message: str,
        subject: str | None = None,
    ) -> None:
        logger.info("Notification channel=%s to=%s subject=%r: %s", channel, recipient, subject, message)


class WebhookNotificationSink:
    """
    NotificationSink that POSTs each notification as JSON to a fan-out service.

    Body: {"channel", "recipient", "subject", "message"}. Non-2xx responses raise.
    """

    def __init__(self, url: str, *, timeout_seconds: float = 10.0, headers: dict[str, str] | None = None) -> None:
        if not url.strip():
            raise ValueError("webhook url is required")
        self._url = url
        self._timeout = httpx.Timeout(timeout_seconds, connect=min(5.0, timeout_seconds))
        self._headers = dict(headers or {})

    async def publish(
        self,
        *,
        channel: str,
        recipient: str,
        message: str,
        subject: str | None = None,
    ) -> None:
        if channel not in CHANNELS:
            raise ValueError(f"unsupported channel: {channel}")
        async with httpx.AsyncClient(timeout=self._timeout, headers=self._headers) as client:
            resp = await client.post(
                self._url,
                json={"channel": channel, "recipient": recipient, "subject": subject, "message": message},
            )
            resp.raise_for_status()
        logger.debug("Webhook notification accepted channel=%s status=%s", channel, resp.status_code)
