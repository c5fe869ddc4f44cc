"""SMS channel senders."""

import logging
import re
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

import httpx

from app.channels.base import ChannelSender, DeliveryResult, NotificationPayload
from app.models.notification import NotificationChannel
from app.services.recipients import Recipient

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
SMS_MAX_LENGTH = 1600


@dataclass(frozen=True)
class DeliveryStatus:
    """Provider-side status of a previously sent message."""

    message_id: str
    status: str
    error_code: str | None = None
    error_message: str | None = None
    date_sent: str | None = None
    raw: dict[str, Any] | None = None


def normalize_phone_number(phone: str, country_code: str = "1") -> str:
    """Format a phone number as E.164.

    Non-digits are dropped and a 10-digit number with a leading 0 gets the
    country code in place of the 0.
    """
    digits = re.sub(r"[^0-9]", "", phone)
    if len(digits) == 10 and digits.startswith("0"):
        digits = country_code + digits[1:]
    return f"+{digits}"


def render_sms(payload: NotificationPayload) -> str:
    if payload.message and payload.title and payload.title != payload.type:
        text = f"{payload.title}: {payload.message}"
    else:
        text = payload.message or payload.title
    return text[:SMS_MAX_LENGTH]


class BaseSmsSender(ChannelSender):
    """Common behaviour for SMS senders."""

    channel = NotificationChannel.SMS

    def __init__(self, sender_id: str = "SchoolMS", country_code: str = "1", **kwargs) -> None:
        super().__init__(**kwargs)
        self.sender_id = sender_id
        self.country_code = country_code

    def deliver(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        if not recipient.phone:
            return DeliveryResult.failed(self.channel, "recipient has no phone number")
        to = normalize_phone_number(recipient.phone, self.country_code)
        return self.send_sms(to, render_sms(payload))

    @abstractmethod
    def send_sms(self, to: str, message: str) -> DeliveryResult:
        pass

    @abstractmethod
    def get_balance(self) -> float:
        pass

    @abstractmethod
    def get_status(self, message_id: str) -> DeliveryStatus:
        pass


class LogSmsSender(BaseSmsSender):
    """Logs SMS messages instead of sending them."""

    def send_sms(self, to: str, message: str) -> DeliveryResult:
        logger.info("SMS (log driver)", extra={"to": to, "from": self.sender_id, "body": message})
        return DeliveryResult.ok(self.channel, f"log-{uuid4().hex}")

    def get_balance(self) -> float:
        return 9999.99

    def get_status(self, message_id: str) -> DeliveryStatus:
        return DeliveryStatus(message_id=message_id, status="delivered")


class TwilioSmsSender(BaseSmsSender):
    """Sends SMS through the Twilio REST API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        status_callback: str | None = None,
        client: httpx.Client | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.account_sid = account_sid
        self.status_callback = status_callback
        self.client = client or httpx.Client(
            base_url=f"{TWILIO_API_BASE}/Accounts/{account_sid}",
            auth=(account_sid, auth_token),
            timeout=self.timeout,
        )

    def send_sms(self, to: str, message: str) -> DeliveryResult:
        form = {"To": to, "From": self.sender_id, "Body": message}
        if self.status_callback:
            form["StatusCallback"] = self.status_callback

        response = self.client.post("/Messages.json", data=form)
        body = response.json() if response.content else {}
        if response.status_code >= 400:
            return DeliveryResult.failed(
                self.channel,
                f"Twilio error {body.get('code', response.status_code)}: "
                f"{body.get('message', response.reason_phrase)}",
            )

        sid = body.get("sid")
        if not sid:
            return DeliveryResult.failed(self.channel, "Twilio response missing message sid")
        return DeliveryResult.ok(self.channel, sid)

    def get_balance(self) -> float:
        try:
            response = self.client.get("/Balance.json")
            response.raise_for_status()
            return float(response.json().get("balance", 0.0))
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Failed to fetch Twilio balance", extra={"error": str(e)})
            return 0.0

    def get_status(self, message_id: str) -> DeliveryStatus:
        try:
            response = self.client.get(f"/Messages/{message_id}.json")
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.error(
                "Failed to fetch Twilio message status",
                extra={"message_id": message_id, "error": str(e)},
            )
            return DeliveryStatus(message_id=message_id, status="failed", error_message=str(e))

        error_code = body.get("error_code")
        return DeliveryStatus(
            message_id=message_id,
            status=body.get("status", "unknown"),
            error_code=str(error_code) if error_code is not None else None,
            error_message=body.get("error_message"),
            date_sent=body.get("date_sent"),
            raw=body,
        )
