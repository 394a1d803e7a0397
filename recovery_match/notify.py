"""
Grant workflow notifications.

EmailNotifier sends through a transactional email HTTP API (Brevo-style
JSON body, `api-key` header). Without an API key, or with EMAIL_DRY_RUN set,
messages are only logged.
"""
from __future__ import annotations

import logging

import httpx

from recovery_match.settings import settings

logger = logging.getLogger("notify")


def format_currency(amount: float | None) -> str:
    if amount is None:
        return "$0.00"
    return "${:,.2f}".format(float(amount))


class Notifier:
    """Interface the award workflow calls. Every method returns True when delivered."""

    def send_grant_application_confirmation(
        self, to: str, grant_name: str, client_name: str, organization_id: int | None = None
    ) -> bool:
        raise NotImplementedError

    def send_grant_award_notification(
        self, to: str, grant_name: str, client_name: str, amount: float | None, organization_id: int | None = None
    ) -> bool:
        raise NotImplementedError

    def send_grant_funding_notification(
        self, to: str, grant_name: str, client_name: str, amount: float | None, organization_id: int | None = None
    ) -> bool:
        raise NotImplementedError


class EmailNotifier(Notifier):
    def __init__(
        self,
        api_url: str | None = None,
        api_key: str | None = None,
        sender: str | None = None,
        sender_name: str | None = None,
        dry_run: bool | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_url = api_url or settings.EMAIL_API_URL
        self.api_key = api_key if api_key is not None else settings.EMAIL_API_KEY
        self.sender = sender or settings.EMAIL_SENDER
        self.sender_name = sender_name or settings.EMAIL_SENDER_NAME
        self.dry_run = bool(settings.EMAIL_DRY_RUN) if dry_run is None else dry_run
        self.timeout = timeout or settings.EMAIL_TIMEOUT_SECONDS
        self._transport = transport

    # ---------- Grant messages ----------

    def send_grant_application_confirmation(self, to, grant_name, client_name, organization_id=None):
        subject = "Your Grant Application Has Been Received"
        text = (
            f"Dear {client_name},\n\n"
            f'Your application for the "{grant_name}" grant has been successfully received. '
            "Our team will review your application and you will be notified of any updates.\n\n"
            "Thank you for your application.\n\n"
            f"Best regards,\n{self.sender_name}"
        )
        html = (
            "<h2>Grant Application Received</h2>"
            f"<p>Dear {client_name},</p>"
            f"<p>Your application for the <strong>{grant_name}</strong> grant has been successfully received.</p>"
            "<p>Our team will review your application and you will be notified of any updates.</p>"
            f"<p>Best regards,<br>{self.sender_name}</p>"
        )
        return self.send_email(to, subject, text, html, organization_id)

    def send_grant_award_notification(self, to, grant_name, client_name, amount, organization_id=None):
        subject = "Congratulations! You've Been Awarded a Grant"
        amt = format_currency(amount)
        text = (
            f"Dear {client_name},\n\n"
            f'You have been awarded {amt} from the "{grant_name}" grant. '
            "Your case manager will be in touch about next steps and when funds will be released.\n\n"
            f"Best regards,\n{self.sender_name}"
        )
        html = (
            "<h2>Grant Awarded</h2>"
            f"<p>Dear {client_name},</p>"
            f"<p>You have been awarded <strong>{amt}</strong> from the <strong>{grant_name}</strong> grant.</p>"
            "<p>Your case manager will be in touch about next steps and when funds will be released.</p>"
            f"<p>Best regards,<br>{self.sender_name}</p>"
        )
        return self.send_email(to, subject, text, html, organization_id)

    def send_grant_funding_notification(self, to, grant_name, client_name, amount, organization_id=None):
        subject = "Your Grant Funds Have Been Released"
        amt = format_currency(amount)
        text = (
            f"Dear {client_name},\n\n"
            f'The {amt} awarded to you from the "{grant_name}" grant has been released.\n\n'
            f"Best regards,\n{self.sender_name}"
        )
        html = (
            "<h2>Grant Funded</h2>"
            f"<p>Dear {client_name},</p>"
            f"<p>The <strong>{amt}</strong> awarded to you from the <strong>{grant_name}</strong> grant has been released.</p>"
            f"<p>Best regards,<br>{self.sender_name}</p>"
        )
        return self.send_email(to, subject, text, html, organization_id)

    # ---------- Transport ----------

    def _payload(self, to: str, subject: str, text: str, html: str, organization_id: int | None) -> dict:
        payload = {
            "sender": {"email": self.sender, "name": self.sender_name},
            "to": [{"email": to}],
            "subject": subject,
            "textContent": text,
            "htmlContent": html,
        }
        if organization_id is not None:
            payload["tags"] = [f"org:{organization_id}"]
        return payload

    def send_email(self, to: str, subject: str, text: str, html: str, organization_id: int | None = None) -> bool:
        if self.dry_run or not self.api_key:
            logger.info(f"[email not sent] to={to} subject={subject!r}")
            return False

        payload = self._payload(to, subject, text, html, organization_id)
        headers = {"api-key": self.api_key, "accept": "application/json"}
        with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
            resp = client.post(self.api_url, json=payload, headers=headers)
            resp.raise_for_status()
        logger.info(f"Email sent to {to}: {subject}")
        return True
