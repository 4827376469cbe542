"""Outbound email and SMS transports.

Both transports fall back to log-only mode when their credentials are not
configured, so a development setup never reaches a real gateway.
"""
from __future__ import annotations

import asyncio
import html
import logging

import httpx
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from floodwatch.models.enums import NotificationChannel

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when a gateway rejects or fails to deliver a message."""


def normalize_phone(phone: str, country_code: str = "94") -> str:
    """Bring a phone number into international form.

    Numbers already starting with ``+`` are kept; otherwise leading zeros are
    stripped and the country code is prefixed.
    """
    phone = phone.strip().replace(" ", "").replace("-", "")
    if phone.startswith("+"):
        return phone
    return f"{country_code}{phone.lstrip('0')}"


def render_alert_html(body: str) -> str:
    lines = "<br>".join(html.escape(line) for line in body.splitlines())
    return (
        '<div style="font-family: Arial, sans-serif; background-color: #f4f4f4; '
        'text-align: center; padding: 20px;">'
        f'<p style="color: #007BFF; font-size: 24px; font-weight: bold;">{lines}</p>'
        "</div>"
    )


class EmailSender:
    """SendGrid-backed email transport."""

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        api_key: str,
        from_email: str,
        subject: str,
        client: SendGridAPIClient | None = None,
    ):
        self.from_email = from_email
        self.subject = subject
        if client is None and api_key:
            client = SendGridAPIClient(api_key)
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None

    def normalize_target(self, address: str) -> str:
        return address.strip().lower()

    async def send(self, address: str, body: str) -> bool:
        if not self.configured:
            logger.info("Email transport not configured, alert for %s: %s", address, body)
            return True

        message = Mail(
            from_email=self.from_email,
            to_emails=address,
            subject=self.subject,
            plain_text_content=body,
            html_content=render_alert_html(body),
        )
        # The SendGrid SDK is blocking.
        response = await asyncio.to_thread(self._client.send, message)
        if response.status_code >= 300:
            raise NotificationError(f"SendGrid answered {response.status_code} for {address}")
        logger.debug("Email sent to %s", address)
        return True


class SmsSender:
    """HTTP SMS gateway transport (Notify.lk style query API)."""

    channel = NotificationChannel.SMS

    def __init__(
        self,
        gateway_url: str,
        user_id: str,
        api_key: str,
        sender_id: str,
        country_code: str = "94",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.gateway_url = gateway_url
        self.user_id = user_id
        self.api_key = api_key
        self.sender_id = sender_id
        self.country_code = country_code
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.user_id)

    def normalize_target(self, phone: str) -> str:
        return normalize_phone(phone, self.country_code)

    async def close(self):
        await self._client.aclose()

    async def send(self, phone: str, body: str) -> bool:
        to = self.normalize_target(phone)
        if not self.configured:
            logger.info("SMS transport not configured, alert for %s: %s", to, body)
            return True

        try:
            response = await self._client.get(
                self.gateway_url,
                params={
                    "user_id": self.user_id,
                    "api_key": self.api_key,
                    "sender_id": self.sender_id,
                    "to": to,
                    "message": body,
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"SMS to {to} failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("status") not in (None, "success"):
            raise NotificationError(f"SMS gateway rejected message to {to}: {data}")
        logger.debug("SMS sent to %s", to)
        return True
