"""
Outbound email over provider HTTP APIs.

Two providers are supported and chosen with MAIL_PROVIDER:
  sendgrid    (default)  https://api.sendgrid.com/v3/mail/send
  mailersend             https://api.mailersend.com/v1/email
With MAIL_SANDBOX=true messages are logged and never sent.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from storefront import config

logger = logging.getLogger("storefront.mailer")

TEMPLATES_DIR = Path(__file__).parent / "templates" / "emails"

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
MAILERSEND_URL = "https://api.mailersend.com/v1/email"

_mailer: Optional["Mailer"] = None


class MailerError(Exception):
    """Provider rejected or could not receive a message."""


def render_template(name: str, values: Dict[str, str]) -> str:
    """Load templates/emails/<name> and substitute [Placeholder] markers."""
    html = (TEMPLATES_DIR / name).read_text(encoding="utf-8")
    for key, value in values.items():
        html = html.replace(f"[{key}]", value or "")
    return html


class Mailer:
    def __init__(
        self,
        provider: Optional[str] = None,
        sandbox: Optional[bool] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.provider = (provider or config.MAIL_PROVIDER).lower()
        if self.provider not in ("sendgrid", "mailersend"):
            raise ValueError(f"Unknown MAIL_PROVIDER: {self.provider}")
        self.sandbox = config.is_mail_sandbox() if sandbox is None else sandbox
        self.from_email = config.MAIL_FROM_ADDRESS
        self.from_name = config.MAIL_FROM_NAME
        self._client = httpx.Client(timeout=30.0, transport=transport)

    def _request(self, to: str, subject: str, html: str, text: Optional[str], to_name: Optional[str]):
        recipient: Dict[str, Any] = {"email": to}
        if to_name:
            recipient["name"] = to_name
        if self.provider == "mailersend":
            payload: Dict[str, Any] = {
                "from": {"email": self.from_email, "name": self.from_name},
                "to": [recipient],
                "subject": subject,
                "html": html,
            }
            if text:
                payload["text"] = text
            return MAILERSEND_URL, config.MAILERSEND_API_KEY, payload
        content = []
        if text:
            content.append({"type": "text/plain", "value": text})
        content.append({"type": "text/html", "value": html})
        payload = {
            "personalizations": [{"to": [recipient]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": content,
        }
        return SENDGRID_URL, config.SENDGRID_API_KEY, payload

    def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        text: Optional[str] = None,
        to_name: Optional[str] = None,
    ) -> bool:
        """Send one message. Raises MailerError when the provider refuses it."""
        if self.sandbox:
            logger.info("mailer: sandbox provider=%s to=%s subject=%r", self.provider, to, subject)
            return True
        url, api_key, payload = self._request(to, subject, html, text, to_name)
        if not api_key:
            raise MailerError(f"No API key configured for mail provider {self.provider}")
        try:
            resp = self._client.post(url, json=payload, headers={"Authorization": f"Bearer {api_key}"})
        except httpx.HTTPError as e:
            raise MailerError(f"{self.provider} request failed: {e}") from e
        if resp.status_code >= 400:
            raise MailerError(f"{self.provider} returned {resp.status_code}: {resp.text}")
        logger.info("mailer: sent provider=%s to=%s subject=%r", self.provider, to, subject)
        return True

    def send_welcome_email(self, to_email: str, to_name: str, first_name: str) -> bool:
        html = render_template(
            "welcome.html",
            {
                "First Name": first_name,
                "Website URL": config.PUBLIC_WEBSITE_URL,
                "Support Email": config.PUBLIC_SUPPORT_EMAIL,
                "Phone Number": config.PUBLIC_SUPPORT_PHONE,
            },
        )
        text = (
            f"Hi {first_name}, welcome to {config.MAIL_FROM_NAME}! "
            f"Use code WELCOME10 for 10% off your first order. Visit {config.PUBLIC_WEBSITE_URL}"
        )
        return self.send_email(
            to_email, f"Welcome to {config.MAIL_FROM_NAME}!", html, text=text, to_name=to_name
        )


def get_mailer() -> Mailer:
    """FastAPI dependency returning the shared mailer."""
    global _mailer
    if _mailer is None:
        _mailer = Mailer()
    return _mailer
