"""Outbound dunning message delivery over email, SMS, push and the in-app inbox."""

from __future__ import annotations

import logging
from email.message import EmailMessage
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.dunning_communication import CommunicationChannel
from app.repositories.notification_repository import NotificationRepository

logger = logging.getLogger(__name__)


class NotificationGateway:
    """Dispatch a rendered message over a named channel.

    ``send`` reports the outcome as a boolean and never raises, so one bad
    channel cannot abort a dunning step.
    """

    def __init__(self, db: Session | None = None, timeout: float = 30.0):
        self.db = db
        self.timeout = timeout

    async def send(
        self,
        channel: str,
        destination: str,
        subject: str | None,
        content: str,
    ) -> bool:
        try:
            if channel == CommunicationChannel.EMAIL.value:
                return await self.send_email(destination, subject or "", content)
            if channel == CommunicationChannel.SMS.value:
                return await self._post(
                    settings.SMS_GATEWAY_URL,
                    settings.SMS_GATEWAY_API_KEY,
                    {"to": destination, "message": content},
                )
            if channel == CommunicationChannel.PUSH.value:
                return await self._post(
                    settings.PUSH_GATEWAY_URL,
                    settings.PUSH_GATEWAY_API_KEY,
                    {"to": destination, "title": subject or "", "body": content},
                )
            if channel == CommunicationChannel.IN_APP.value:
                return self.send_in_app(destination, subject or "", content)
        except Exception:
            logger.exception("Failed to send %s notification to %s", channel, destination)
            return False

        logger.warning("Unsupported notification channel %s", channel)
        return False

    async def send_email(self, to: str, subject: str, body: str) -> bool:
        """Send a plain-text email via SMTP (no-op when SMTP is unconfigured)."""
        if not settings.SMTP_HOST:
            logger.info("SMTP not configured, skipping email to %s: %s", to, subject)
            return True

        import aiosmtplib

        msg = EmailMessage()
        msg["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)

        await aiosmtplib.send(
            msg,
            hostname=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            username=settings.SMTP_USERNAME or None,
            password=settings.SMTP_PASSWORD or None,
            start_tls=settings.SMTP_USE_TLS,
        )
        logger.info("Email sent to %s: %s", to, subject)
        return True

    def send_in_app(self, customer_id: str, title: str, message: str) -> bool:
        """Drop the message into the customer's in-app inbox."""
        if self.db is None:
            logger.warning("No session available, skipping in-app message for %s", customer_id)
            return False
        NotificationRepository(self.db).create(
            customer_id=UUID(customer_id),
            category="dunning",
            title=title or "Payment update",
            message=message[:2000],
        )
        return True

    async def _post(self, url: str, api_key: str, payload: dict[str, Any]) -> bool:
        if not url:
            logger.warning("Gateway URL not configured, skipping message to %s", payload.get("to"))
            return False

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Notification delivery to %s failed: %s", url, exc)
            return False

        if 200 <= resp.status_code < 300:
            return True
        logger.warning("Notification gateway %s returned %s", url, resp.status_code)
        return False
