"""Outbound email (Mailgun preferred, SendGrid fallback) and the verification-code template.

Senders are plain objects built from Settings and handed to the services, so
tests can pass a recording fake instead of talking to a provider.
"""
import html
import logging

import httpx

from app.config import Settings, get_settings
from app.services.errors import (
    DOMAIN_VERIFICATION_REQUIRED,
    EMAIL_SEND_FAILED,
    SERVICE_CONFIG_ERROR,
    EmailDeliveryFailed,
)

log = logging.getLogger("uvicorn.error")

MAILGUN_US_BASE = "https://api.mailgun.net"
MAILGUN_EU_BASE = "https://api.eu.mailgun.net"

VERIFICATION_SUBJECT = "Your Campus Notes Hub Verification Code"

_DOMAIN_HINTS = ("domain", "sandbox", "authorized recipient", "testing emails", "not allowed to send")
_CONFIG_HINTS = ("api key", "unauthorized", "forbidden")


def classify_delivery_error(status_code: int | None, body: str | None) -> str:
    """Map a provider failure to the reason reported to the client."""
    text = (body or "").lower()
    if any(h in text for h in _DOMAIN_HINTS):
        return DOMAIN_VERIFICATION_REQUIRED
    if status_code == 401 or any(h in text for h in _CONFIG_HINTS):
        return SERVICE_CONFIG_ERROR
    return EMAIL_SEND_FAILED


class EmailSender:
    """Interface: send() returns None on success and raises EmailDeliveryFailed otherwise."""

    def send(self, to_email: str, subject: str, html_content: str, text_content: str | None = None) -> None:
        raise NotImplementedError


class MailgunSender(EmailSender):
    def __init__(self, settings: Settings, timeout: float = 10.0, transport: httpx.BaseTransport | None = None):
        self.settings = settings
        self.timeout = timeout
        self.transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.settings.mailgun_api_key and self.settings.mailgun_domain)

    def _from_address(self) -> str:
        domain = (self.settings.mailgun_domain or "").strip().lower()
        from_addr = (self.settings.mailgun_from_email or "").strip()
        from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
        if domain and from_domain != domain:
            # Mailgun drops mail whose sender does not match the sending domain
            from_addr = f"noreply@{domain}"
        return f"{self.settings.mailgun_from_name} <{from_addr}>"

    def send(self, to_email: str, subject: str, html_content: str, text_content: str | None = None) -> None:
        if not self.configured:
            log.error("Mailgun not configured: set MAILGUN_API_KEY and MAILGUN_DOMAIN")
            raise EmailDeliveryFailed(SERVICE_CONFIG_ERROR)
        base = (self.settings.mailgun_base_url or MAILGUN_US_BASE).strip().rstrip("/")
        domain = self.settings.mailgun_domain.strip().lower()
        data = {
            "from": self._from_address(),
            "to": to_email,
            "subject": subject,
            "text": text_content or "",
            "html": html_content or "",
        }
        auth = ("api", self.settings.mailgun_api_key)
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                r = client.post(f"{base}/v3/{domain}/messages", auth=auth, data=data)
                if r.status_code == 401 and base == MAILGUN_US_BASE:
                    log.info("Mailgun 401 with US endpoint. Retrying with EU endpoint...")
                    r = client.post(f"{MAILGUN_EU_BASE}/v3/{domain}/messages", auth=auth, data=data)
        except httpx.HTTPError:
            log.exception("Mailgun request failed: to=%s", to_email)
            raise EmailDeliveryFailed(EMAIL_SEND_FAILED)
        if 200 <= r.status_code < 300:
            log.info("Mailgun accepted message: to=%s status=%s", to_email, r.status_code)
            return
        log.error("Mailgun API failed: status=%s to=%s body=%s", r.status_code, to_email, r.text[:500])
        raise EmailDeliveryFailed(classify_delivery_error(r.status_code, r.text))


class SendGridSender(EmailSender):
    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to_email: str, subject: str, html_content: str, text_content: str | None = None) -> None:
        if not self.settings.sendgrid_api_key:
            log.error("SendGrid not configured: set SENDGRID_API_KEY")
            raise EmailDeliveryFailed(SERVICE_CONFIG_ERROR)
        from sendgrid import SendGridAPIClient
        from sendgrid.helpers.mail import Mail

        message = Mail(
            from_email=(self.settings.sendgrid_from_email, self.settings.sendgrid_from_name),
            to_emails=to_email,
            subject=subject,
            html_content=html_content,
            plain_text_content=text_content or "",
        )
        try:
            SendGridAPIClient(self.settings.sendgrid_api_key).send(message)
        except Exception as e:
            status_code = getattr(e, "status_code", None)
            body = getattr(e, "body", b"")
            if isinstance(body, bytes):
                body = body.decode("utf-8", errors="replace")
            log.error("SendGrid API failed: status=%s to=%s body=%s", status_code, to_email, str(body)[:500])
            raise EmailDeliveryFailed(classify_delivery_error(status_code, str(body)))


def get_email_sender() -> EmailSender:
    """Mailgun when configured, else SendGrid when configured, else Mailgun (which reports the missing config)."""
    settings = get_settings()
    if settings.mailgun_api_key and settings.mailgun_domain:
        return MailgunSender(settings)
    if settings.sendgrid_api_key:
        return SendGridSender(settings)
    return MailgunSender(settings)


def render_verification_email(code: str, full_name: str, role: str, expire_minutes: int = 10) -> tuple[str, str]:
    """Return (html, text) bodies for the signup verification code."""
    name = html.escape((full_name or "").strip() or "there")
    role_label = html.escape(role or "student")
    text = (
        f"Hi {full_name or 'there'}, your Campus Notes Hub verification code is {code}. "
        f"This code will expire in {expire_minutes} minutes. "
        "Security Notice: if you didn't request this code, please ignore this email. "
        "Never share your verification code with anyone."
    )
    body = f"""
    <div style="max-width:600px;margin:0 auto;padding:40px 20px;font-family:Arial,sans-serif;">
      <h1 style="color:#1e40af;text-align:center;">Welcome to Campus Notes Hub!</h1>
      <div style="background:#f8fafc;padding:30px;border-radius:12px;text-align:center;">
        <h2 style="color:#334155;">Your Verification Code</h2>
        <p style="font-size:32px;font-weight:bold;color:#1e40af;letter-spacing:4px;">{code}</p>
        <p style="color:#64748b;font-size:14px;">This code will expire in {expire_minutes} minutes</p>
      </div>
      <h3 style="color:#334155;">Hi {name}!</h3>
      <p style="color:#64748b;line-height:1.6;">
        You're almost ready to join Campus Notes Hub as a <strong>{role_label}</strong>.
        Enter the verification code above to complete your registration.
      </p>
      <div style="background:#fef3c7;padding:20px;border-radius:8px;border-left:4px solid #f59e0b;">
        <p style="color:#92400e;font-size:14px;">
          <strong>Security Notice:</strong> If you didn't request this code, please ignore this email.
          Never share your verification code with anyone.
        </p>
      </div>
      <p style="color:#94a3b8;font-size:12px;text-align:center;">Campus Notes Hub - Connect, Share, Learn Together</p>
    </div>
    """
    return body, text


def send_verification_email(
    sender: EmailSender,
    to_email: str,
    code: str,
    full_name: str,
    role: str,
    expire_minutes: int = 10,
) -> None:
    """Send the 6-digit signup code. Raises EmailDeliveryFailed with a classified reason."""
    html_content, text_content = render_verification_email(code, full_name, role, expire_minutes)
    log.info("Sending verification code email to %s", to_email)
    sender.send(to_email, VERIFICATION_SUBJECT, html_content, text_content=text_content)
