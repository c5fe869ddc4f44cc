"""Mail channel senders.

``LogMailSender`` writes the rendered message to the log and is the default
for local development. ``SendGridMailSender`` delivers through SendGrid.
"""

import html
import json
import logging
from typing import Any

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail

from app.channels.base import ChannelSender, DeliveryResult, NotificationPayload
from app.models.notification import NotificationChannel
from app.services.recipients import Recipient

logger = logging.getLogger(__name__)


def render_mail(recipient: Recipient, payload: NotificationPayload) -> tuple[str, str]:
    """Render subject and HTML body for a notification."""
    subject = payload.title
    parts = []
    if recipient.name:
        parts.append(f"<p>Hello {html.escape(recipient.name)},</p>")
    if payload.message:
        parts.append(f"<p>{html.escape(payload.message)}</p>")
    if payload.action_url:
        url = html.escape(payload.action_url, quote=True)
        parts.append(f'<p><a href="{url}">View details</a></p>')
    return subject, "".join(parts) or f"<p>{html.escape(subject)}</p>"


def extract_sendgrid_error(body: Any) -> str | None:
    """Return a readable description of a SendGrid error payload."""
    if body in (None, ""):
        return None
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except json.JSONDecodeError:
            return body.strip() or None

    if isinstance(body, dict) and isinstance(body.get("errors"), list):
        messages = [
            str(item["message"])
            for item in body["errors"]
            if isinstance(item, dict) and item.get("message")
        ]
        if messages:
            return "; ".join(messages)
    return json.dumps(body, default=str)


class LogMailSender(ChannelSender):
    """Logs mail instead of sending it."""

    channel = NotificationChannel.MAIL

    def deliver(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        if not recipient.email:
            return DeliveryResult.failed(self.channel, "recipient has no email address")

        subject, _ = render_mail(recipient, payload)
        logger.info(
            "Mail (log driver)",
            extra={"to": recipient.email, "subject": subject, "type": payload.type},
        )
        return DeliveryResult.ok(self.channel, f"log-{payload.origin_key}")


class SendGridMailSender(ChannelSender):
    """Sends mail through the SendGrid v3 API."""

    channel = NotificationChannel.MAIL

    def __init__(
        self,
        api_key: str,
        from_address: str,
        from_name: str | None = None,
        client: SendGridAPIClient | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.from_address = from_address
        self.from_name = from_name
        self.client = client or SendGridAPIClient(api_key)
        # python-http-client reads its timeout from the client instance
        self.client.client.timeout = self.timeout

    def deliver(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        if not recipient.email:
            return DeliveryResult.failed(self.channel, "recipient has no email address")

        subject, html_content = render_mail(recipient, payload)
        from_email = (self.from_address, self.from_name) if self.from_name else self.from_address
        message = Mail(
            from_email=from_email,
            to_emails=recipient.email,
            subject=subject,
            html_content=html_content,
        )

        try:
            response = self.client.send(message)
        except Exception as exc:
            details = extract_sendgrid_error(getattr(exc, "body", None))
            status_code = getattr(exc, "status_code", None)
            if status_code is None:
                raise
            return DeliveryResult.failed(
                self.channel, f"SendGrid status {status_code}: {details or exc}"
            )

        status_code = getattr(response, "status_code", None)
        if not isinstance(status_code, int) or not 200 <= status_code < 300:
            details = extract_sendgrid_error(getattr(response, "body", None))
            return DeliveryResult.failed(
                self.channel, f"SendGrid status {status_code}: {details or 'no details'}"
            )

        headers = getattr(response, "headers", None) or {}
        return DeliveryResult.ok(self.channel, headers.get("X-Message-Id"))
