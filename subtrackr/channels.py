"""Email and SMS delivery channels."""

from __future__ import annotations

import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from .config import SmtpConfig, TwilioConfig
from .errors import ChannelNotConfiguredError, DeliveryError

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30

_HTML_TEMPLATE = """\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #1976d2;">SubTrackr Notification</h2>
  <p>{body}</p>
  <hr style="border: none; border-top: 1px solid #eee; margin: 20px 0;">
  <p style="color: #666; font-size: 12px;">
    This is an automated notification from SubTrackr.
  </p>
</div>"""


class EmailChannel(Protocol):
    def send_email(self, to: str, subject: str, body: str) -> None: ...


class SmsChannel(Protocol):
    def send_sms(self, to: str, body: str) -> None: ...


class SmtpEmailChannel:
    """Sends email through an SMTP relay (Gmail app passwords work)."""

    def __init__(self, config: SmtpConfig) -> None:
        self.config = config

    def _build_message(self, to: str, subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.config.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))
        msg.attach(MIMEText(_HTML_TEMPLATE.format(body=html.escape(body)), "html"))
        return msg

    def send_email(self, to: str, subject: str, body: str) -> None:
        """
        Send an email.

        Raises:
            ChannelNotConfiguredError: If SMTP credentials are missing.
            DeliveryError: If the SMTP exchange fails.
        """
        if not self.config.is_configured:
            raise ChannelNotConfiguredError("email", "set EMAIL_USER and EMAIL_PASS")

        msg = self._build_message(to, subject, body)
        host, port = self.config.host, self.config.port
        logger.debug(f"Connecting to SMTP server: {host}:{port}")
        try:
            if self.config.use_ssl or port == 465:
                server = smtplib.SMTP_SSL(host, port, timeout=SMTP_TIMEOUT_SECONDS)
            else:
                server = smtplib.SMTP(host, port, timeout=SMTP_TIMEOUT_SECONDS)
                server.starttls()
            try:
                server.login(self.config.username, self.config.password)
                server.send_message(msg)
            finally:
                server.quit()
        except smtplib.SMTPAuthenticationError as e:
            logger.error(
                f"SMTP authentication failed for {self.config.username}. "
                f"For Gmail, use an App Password. Error details: {e}"
            )
            raise DeliveryError(f"Failed to send email: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email: {e}")
            raise DeliveryError(f"Failed to send email: {e}") from e

        logger.info(f"Email sent successfully to {to}")
        logger.debug(f"Subject: {subject}")


class TwilioSmsChannel:
    """Sends SMS through Twilio."""

    def __init__(self, config: TwilioConfig, client: Optional[Client] = None) -> None:
        self.config = config
        self._client = client

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = Client(self.config.account_sid, self.config.auth_token)
        return self._client

    def send_sms(self, to: str, body: str) -> None:
        """
        Send an SMS.

        Raises:
            ChannelNotConfiguredError: If the Twilio account or sender number is missing.
            DeliveryError: If Twilio rejects the message.
        """
        if not self.config.is_configured:
            raise ChannelNotConfiguredError("sms", "Twilio not configured")
        if not self.config.from_number:
            raise ChannelNotConfiguredError("sms", "Twilio phone number not configured")

        try:
            message_obj = self.client.messages.create(
                body=body,
                from_=self.config.from_number,
                to=to,
            )
        except TwilioRestException as e:
            if e.status == 401 or e.code == 20003:
                logger.error(
                    "Twilio authentication failed (Error 20003). "
                    f"Check TWILIO_ACCOUNT_SID ({(self.config.account_sid or '')[:10]}...) "
                    "and TWILIO_AUTH_TOKEN."
                )
            else:
                logger.error(f"Failed to send SMS: {e}")
            raise DeliveryError(f"Failed to send SMS: {e.msg}") from e

        logger.info(f"SMS sent successfully to {to}. SID: {message_obj.sid}")
        logger.debug(f"Message preview: {body[:50]}...")
