"""
Outgoing email for Help Center, used to deliver team invitations.

Two providers ship: :class:`SMTPEmailProvider` sends through an SMTP
relay, and :class:`LogEmailProvider` writes the message to the log
instead, which is the default when no ``SMTP_HOST`` is configured.

A provider never raises for delivery problems; it returns an
:class:`EmailResult` with ``success=False`` so callers can carry on.

Example:
    service = build_email_service()
    result = await service.send_team_invite(
        to_email="new@example.com",
        inviter_name="alice",
        knowledge_base_name="Support",
        role="editor",
        invite_url="https://help.example.com/invite/abc",
    )
    print(result.success, result.message_id)
"""

from __future__ import annotations

import asyncio
import html
import logging
import smtplib
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any

from helpcenter.config.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str | None = None
    from_address: str | None = None
    reply_to: str | None = None


@dataclass
class EmailResult:
    success: bool
    message_id: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message_id": self.message_id, "error": self.error}


class EmailProvider(ABC):
    """Delivers a single message."""

    @abstractmethod
    async def send(self, message: EmailMessage) -> EmailResult:
        ...


class LogEmailProvider(EmailProvider):
    """Logs messages instead of sending them."""

    async def send(self, message: EmailMessage) -> EmailResult:
        message_id = f"log-{uuid.uuid4().hex}"
        logger.info(
            "Email not sent (no SMTP configured) id=%s to=%s from=%s subject=%r\n%s",
            message_id,
            message.to,
            message.from_address,
            message.subject,
            message.text or "(no text version)",
        )
        return EmailResult(success=True, message_id=message_id)


class SMTPEmailProvider(EmailProvider):
    """Sends through an SMTP relay.

    smtplib is blocking, so each send runs in a worker thread.
    """

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        use_ssl: bool = False,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _build_mime(self, message: EmailMessage, message_id: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = message.from_address or ""
        msg["To"] = message.to
        msg["Message-ID"] = message_id
        if message.reply_to:
            msg["Reply-To"] = message.reply_to
        if message.text:
            msg.attach(MIMEText(message.text, "plain", "utf-8"))
        msg.attach(MIMEText(message.html, "html", "utf-8"))
        return msg

    def _deliver(self, message: EmailMessage, mime: MIMEMultipart) -> None:
        if self.use_ssl:
            server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            if self.use_tls:
                server.starttls()
        try:
            if self.username and self.password:
                server.login(self.username, self.password)
            server.sendmail(message.from_address or "", [message.to], mime.as_string())
        finally:
            server.quit()

    async def send(self, message: EmailMessage) -> EmailResult:
        domain = self.host or "localhost"
        message_id = f"<{uuid.uuid4().hex}@{domain}>"
        mime = self._build_mime(message, message_id)
        try:
            await asyncio.to_thread(self._deliver, message, mime)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("SMTP send to %s failed: %s", message.to, e)
            return EmailResult(success=False, error=f"SMTP send failed: {e}")
        logger.info("Sent email %s to %s", message_id, message.to)
        return EmailResult(success=True, message_id=message_id)


def render_invite_text(inviter_name: str, knowledge_base_name: str, role: str, invite_url: str) -> str:
    return (
        "You're Invited!\n\n"
        f"{inviter_name} has invited you to join {knowledge_base_name} as a {role}.\n\n"
        "Click the link below to accept this invitation and get started:\n\n"
        f"{invite_url}\n\n"
        "---\n\n"
        "This invitation was sent to you because someone invited you to collaborate. "
        "If you didn't expect this invitation, you can safely ignore this email."
    )


def render_invite_html(inviter_name: str, knowledge_base_name: str, role: str, invite_url: str) -> str:
    inviter = html.escape(inviter_name)
    kb_name = html.escape(knowledge_base_name)
    role_name = html.escape(role)
    url = html.escape(invite_url, quote=True)
    return f"""<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"><title>Team Invitation</title></head>
<body style="margin: 0; padding: 24px; font-family: Arial, sans-serif; background-color: #f4f4f5;">
  <div style="max-width: 560px; margin: 0 auto; padding: 40px; background-color: #ffffff; border-radius: 8px;">
    <h1 style="margin: 0 0 20px; font-size: 24px; color: #18181b; text-align: center;">You're Invited!</h1>
    <p style="font-size: 16px; color: #3f3f46;">
      <strong>{inviter}</strong> has invited you to join <strong>{kb_name}</strong> as a <strong>{role_name}</strong>.
    </p>
    <p style="text-align: center; padding: 10px 0;">
      <a href="{url}" style="display: inline-block; padding: 14px 32px; background-color: #18181b; color: #ffffff; text-decoration: none; border-radius: 6px;">Accept Invitation</a>
    </p>
    <p style="font-size: 14px; color: #71717a;">Or copy and paste this link into your browser:</p>
    <p style="font-size: 14px; color: #3b82f6; word-break: break-all;">{url}</p>
    <p style="margin-top: 30px; font-size: 14px; color: #a1a1aa; text-align: center;">
      This invitation was sent to you because someone invited you to collaborate.
      If you didn't expect this invitation, you can safely ignore this email.
    </p>
  </div>
</body>
</html>"""


class EmailService:
    """Composes messages and hands them to a provider."""

    def __init__(self, provider: EmailProvider, from_address: str, from_name: str = ""):
        self.provider = provider
        self.from_address = from_address
        self.from_name = from_name

    @property
    def sender(self) -> str:
        if self.from_name:
            return formataddr((self.from_name, self.from_address))
        return self.from_address

    async def send(self, message: EmailMessage) -> EmailResult:
        if message.from_address is None:
            message.from_address = self.sender
        return await self.provider.send(message)

    async def send_team_invite(
        self,
        to_email: str,
        inviter_name: str,
        knowledge_base_name: str,
        role: str,
        invite_url: str,
    ) -> EmailResult:
        return await self.send(
            EmailMessage(
                to=to_email,
                subject=f"You've been invited to join {knowledge_base_name}",
                html=render_invite_html(inviter_name, knowledge_base_name, role, invite_url),
                text=render_invite_text(inviter_name, knowledge_base_name, role, invite_url),
            )
        )


def build_email_service(config: Settings | None = None) -> EmailService:
    """Pick SMTP when ``SMTP_HOST`` is set, otherwise log messages."""
    config = config or default_settings
    provider: EmailProvider
    if config.SMTP_HOST:
        provider = SMTPEmailProvider(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_USERNAME,
            password=config.SMTP_PASSWORD,
            use_tls=config.SMTP_USE_TLS,
            use_ssl=config.SMTP_USE_SSL,
            timeout=config.SMTP_TIMEOUT,
        )
    else:
        provider = LogEmailProvider()
    return EmailService(provider, config.EMAIL_FROM, config.EMAIL_FROM_NAME)
