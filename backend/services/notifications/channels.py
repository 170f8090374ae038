"""Outbound notification channels.

Every channel exposes ``send(text, subject=None) -> DeliveryInfo`` and raises
``ChannelDeliveryError`` on failure. Callers decide whether a failure matters;
the report scheduler and the alert notifier treat it as non-fatal.
"""

from __future__ import annotations

import logging
import os
import smtplib
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from app.core.errors import ChannelDeliveryError
from services.notifications.smtp_sender import build_message, send_smtp

logger = logging.getLogger(__name__)

SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() in ("1", "true", "yes")
SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM = os.getenv("SMTP_FROM", "Demand-Supply Dashboard <noreply@localhost>")
REPORT_EMAIL_TO = os.getenv("REPORT_EMAIL_TO", "")

WHATSAPP_GATEWAY_URL = os.getenv("WHATSAPP_GATEWAY_URL", "")
WHATSAPP_GATEWAY_TOKEN = os.getenv("WHATSAPP_GATEWAY_TOKEN", "")


@dataclass
class DeliveryInfo:
    channel: str
    recipients: list[str] = field(default_factory=list)
    message_id: Optional[str] = None
    detail: Optional[str] = None


class Channel(Protocol):
    name: str

    def send(self, text: str, subject: Optional[str] = None) -> DeliveryInfo: ...


def _split_addresses(raw: str) -> list[str]:
    return [x.strip() for x in (raw or "").split(",") if x.strip()]


class EmailChannel:
    name = "email"

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        use_tls: bool = True,
        username: str = "",
        password: str = "",
        from_email: str,
        recipients: list[str],
        sender=send_smtp,
    ):
        self.host = host
        self.port = port
        self.use_tls = use_tls
        self.username = username
        self.password = password
        self.from_email = from_email
        self.recipients = list(recipients)
        self._sender = sender

    def send(self, text: str, subject: Optional[str] = None) -> DeliveryInfo:
        if not self.recipients:
            raise ChannelDeliveryError(self.name, "no recipients configured")
        msg = build_message(
            from_email=self.from_email,
            to_emails=self.recipients,
            subject=subject or "Demand-Supply Dashboard",
            body_text=text,
        )
        try:
            self._sender(
                host=self.host,
                port=self.port,
                use_tls=self.use_tls,
                username=self.username,
                password=self.password,
                msg=msg,
            )
        except (smtplib.SMTPException, OSError) as e:
            raise ChannelDeliveryError(self.name, str(e)) from e
        return DeliveryInfo(channel=self.name, recipients=list(self.recipients), message_id=msg["Message-ID"])


class WhatsAppChannel:
    """Posts messages to a WhatsApp gateway that owns the linked-device session.

    The gateway answers ``POST /send`` with ``{"message", "type"}`` and reports
    readiness on ``GET /status``.
    """

    name = "whatsapp"

    def __init__(self, base_url: str, *, token: str = "", message_type: str = "info", client: httpx.Client | None = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.message_type = message_type
        self._client = client or httpx.Client(timeout=15.0)

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def status(self) -> dict:
        try:
            resp = self._client.get(f"{self.base_url}/status", headers=self._headers())
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            return {"ready": False, "error": str(e)}
        return {
            "ready": bool(body.get("ready")),
            "group": body.get("groupName") or body.get("group"),
            "status": body.get("status"),
        }

    def send(self, text: str, subject: Optional[str] = None) -> DeliveryInfo:
        message = f"*{subject}*\n{text}" if subject else text
        try:
            resp = self._client.post(
                f"{self.base_url}/send",
                json={"message": message, "type": self.message_type},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            raise ChannelDeliveryError(self.name, str(e)) from e
        if not 200 <= resp.status_code < 300:
            raise ChannelDeliveryError(self.name, f"HTTP {resp.status_code}: {resp.text[:300]}")
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if body.get("success") is False:
            raise ChannelDeliveryError(self.name, str(body.get("error") or "gateway refused message"))
        return DeliveryInfo(channel=self.name, recipients=[body.get("group") or "group"], detail=body.get("message"))


def build_channels() -> list[Channel]:
    """Channels enabled by the environment; an unconfigured channel is skipped."""
    channels: list[Channel] = []
    recipients = _split_addresses(REPORT_EMAIL_TO)
    if SMTP_HOST and recipients:
        channels.append(
            EmailChannel(
                host=SMTP_HOST,
                port=SMTP_PORT,
                use_tls=SMTP_USE_TLS,
                username=SMTP_USERNAME,
                password=SMTP_PASSWORD,
                from_email=SMTP_FROM,
                recipients=recipients,
            )
        )
    else:
        logger.info("Email channel disabled (SMTP_HOST or REPORT_EMAIL_TO not set)")
    if WHATSAPP_GATEWAY_URL:
        channels.append(WhatsAppChannel(WHATSAPP_GATEWAY_URL, token=WHATSAPP_GATEWAY_TOKEN))
    else:
        logger.info("WhatsApp channel disabled (WHATSAPP_GATEWAY_URL not set)")
    return channels
