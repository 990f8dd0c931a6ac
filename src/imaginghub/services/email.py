"""Email service for sending transactional emails."""

import html as html_lib
import logging
from abc import ABC, abstractmethod
from email.message import EmailMessage

import aiosmtplib
import httpx

from imaginghub.config import settings
from imaginghub.services.resilience import with_retry

logger = logging.getLogger(__name__)


class EmailBackend(ABC):
    """Abstract base class for email backends."""

    @abstractmethod
    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
    ) -> bool:
        """Send an email.

        Args:
            to: Recipient email address
            subject: Email subject
            html: HTML content
            text: Plain text content (optional)

        Returns:
            True if sent successfully
        """


class ConsoleEmailBackend(EmailBackend):
    """Email backend that logs to console (for development)."""

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
    ) -> bool:
        logger.info(
            f"\n{'='*60}\n"
            f"EMAIL (console backend - not sent)\n"
            f"To: {to}\n"
            f"Subject: {subject}\n"
            f"{'-'*60}\n"
            f"{text or html}\n"
            f"{'='*60}"
        )
        return True


class SMTPEmailBackend(EmailBackend):
    """Email backend using SMTP."""

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        from_address: str = "",
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_address = from_address

    def build_message(self, to: str, subject: str, html: str, text: str | None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        # Plain text first so clients without HTML support still get the link
        message.set_content(text or "Open this email in an HTML capable client to sign in.")
        message.add_alternative(html, subtype="html")
        return message

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
    ) -> bool:
        message = self.build_message(to, subject, html, text)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email via SMTP to {to}: {e!r}")
            return False

        logger.info(f"Email sent via SMTP to {to}")
        return True


class ResendEmailBackend(EmailBackend):
    """Email backend using the Resend API."""

    API_URL = "https://api.resend.com/emails"

    def __init__(
        self,
        api_key: str,
        from_address: str,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = 3,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.client = client
        self.max_attempts = max_attempts

    async def _post(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await client.post(
            self.API_URL,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json=payload,
            timeout=30.0,
        )

    async def send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str | None = None,
    ) -> bool:
        payload = {
            "from": self.from_address,
            "to": [to],
            "subject": subject,
            "html": html,
            "text": text,
        }
        try:
            if self.client is not None:
                response = await with_retry(
                    self._post, self.client, payload, max_attempts=self.max_attempts
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await with_retry(
                        self._post, client, payload, max_attempts=self.max_attempts
                    )
        except httpx.TransportError as e:
            logger.error(f"Failed to reach Resend for {to}: {e!r}")
            return False

        if response.is_error:
            logger.error(f"Resend API error: {response.status_code} - {response.text}")
            return False

        logger.info(f"Email sent via Resend to {to}")
        return True


def get_email_backend() -> EmailBackend:
    """Get the configured email backend."""
    if settings.email_backend == "console":
        return ConsoleEmailBackend()
    elif settings.email_backend == "smtp":
        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_address=settings.email_from,
        )
    elif settings.email_backend == "resend":
        return ResendEmailBackend(
            api_key=settings.resend_api_key,
            from_address=settings.email_from,
        )
    else:
        raise ValueError(f"Unknown email backend: {settings.email_backend}")


MAGIC_LINK_HTML = """
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <h1 style="color: #1a1a1a; text-align: center;">Imaging Hub</h1>
    <div style="background: #f9fafb; border-radius: 8px; padding: 30px;">
        <p>Use the button below to finish signing in. You can open it on this device
        or on any other; {device_line}</p>
        <p style="text-align: center; margin: 30px 0;">
            <a href="{magic_link}"
               style="background: #b31b1b; color: white; padding: 12px 30px; border-radius: 6px; text-decoration: none;">
                Confirm sign-in
            </a>
        </p>
        <p style="color: #666; font-size: 14px;">
            The link expires in {expires_minutes} minutes and works once. If you
            didn't try to sign in, ignore this email.
        </p>
    </div>
    <p style="color: #666; font-size: 12px; word-break: break-all;">{magic_link}</p>
</body>
</html>
"""

MAGIC_LINK_TEXT = """
Confirm your Imaging Hub sign-in

Open this link on this device or on any other; {device_line}

{magic_link}

The link expires in {expires_minutes} minutes and works once. If you didn't
try to sign in, ignore this email.
"""


class EmailService:
    """High-level email service for sending application emails."""

    def __init__(self, backend: EmailBackend | None = None):
        self._backend = backend

    @property
    def backend(self) -> EmailBackend:
        """Lazy-load the backend."""
        if self._backend is None:
            self._backend = get_email_backend()
        return self._backend

    async def send_magic_link(
        self,
        to: str,
        magic_link: str,
        requesting_device: str | None = None,
    ) -> bool:
        """Send a sign-in confirmation email.

        Args:
            to: Recipient email address
            magic_link: Full callback URL, including the session token
            requesting_device: Short description of the device waiting for confirmation

        Returns:
            True if sent successfully
        """
        if requesting_device:
            device_line = f"the sign-in will then complete on {requesting_device}."
        else:
            device_line = "the device where you asked to sign in will then finish automatically."

        values = {
            "magic_link": magic_link,
            "device_line": device_line,
            "expires_minutes": settings.pending_session_ttl_minutes,
        }
        # Device descriptions come from the requesting client
        html_values = {k: html_lib.escape(str(v)) for k, v in values.items()}
        return await self.backend.send(
            to=to,
            subject="Confirm your Imaging Hub sign-in",
            html=MAGIC_LINK_HTML.format(**html_values),
            text=MAGIC_LINK_TEXT.format(**values),
        )


# Global email service instance
email_service = EmailService()
