"""Push channel senders.

``FcmPushSender`` targets Firebase Cloud Messaging (HTTP v1 API). Device
tokens take precedence over topics; a recipient with neither cannot be
reached by push.
"""

import logging
import re
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import httpx

from app.channels.base import ChannelSender, DeliveryResult, NotificationPayload
from app.models.notification import NotificationChannel
from app.services.recipients import Recipient

logger = logging.getLogger(__name__)

FCM_API_BASE = "https://fcm.googleapis.com/v1"
IID_API_BASE = "https://iid.googleapis.com/iid/v1"
TOPIC_NAME_PATTERN = re.compile(r"[^a-zA-Z0-9\-_.~%]")


@dataclass
class PushBatchResult:
    """Aggregate outcome of a multi-device send."""

    success: int = 0
    failure: int = 0
    message_ids: list[str] = field(default_factory=list)
    failed_tokens: list[str] = field(default_factory=list)

    @property
    def any_delivered(self) -> bool:
        return self.success > 0


def chunked(items: list[str], size: int) -> list[list[str]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


def normalize_topic_name(topic: str, prefix: str = "") -> str:
    """Strip a ``/topics/`` prefix, drop invalid characters and apply ``prefix``."""
    name = topic.removeprefix("/topics/")
    name = TOPIC_NAME_PATTERN.sub("_", name)
    if prefix and not name.startswith(prefix):
        name = prefix + name
    return name


def parse_json_body(response: httpx.Response) -> dict[str, Any]:
    """JSON object body of ``response``, or an empty dict for anything else."""
    try:
        body = response.json() if response.content else {}
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def stringify_data(data: dict[str, Any]) -> dict[str, str]:
    """FCM data payloads only accept string values."""
    return {str(k): v if isinstance(v, str) else str(v) for k, v in data.items() if v is not None}


class BasePushSender(ChannelSender):
    """Routes a notification to device tokens or topics."""

    channel = NotificationChannel.PUSH

    def __init__(self, topic_prefix: str = "", multicast_batch_size: int = 500, **kwargs) -> None:
        super().__init__(**kwargs)
        self.topic_prefix = topic_prefix
        self.multicast_batch_size = multicast_batch_size

    def deliver(self, recipient: Recipient, payload: NotificationPayload) -> DeliveryResult:
        tokens = list(recipient.device_tokens)
        if len(tokens) == 1:
            return self.send_to_device(tokens[0], payload)
        if tokens:
            batch = self.send_to_devices(tokens, payload)
            if batch.any_delivered:
                return DeliveryResult.ok(self.channel, batch.message_ids[0])
            return DeliveryResult.failed(
                self.channel, f"push rejected for all {batch.failure} device tokens"
            )

        if recipient.topics:
            results = [self.send_to_topic(topic, payload) for topic in recipient.topics]
            delivered = [r for r in results if r.success]
            if delivered:
                return delivered[0]
            return results[0]

        return DeliveryResult.failed(self.channel, "recipient has no device tokens or topics")

    def send_to_devices(self, tokens: list[str], payload: NotificationPayload) -> PushBatchResult:
        result = PushBatchResult()
        for batch in chunked(tokens, self.multicast_batch_size):
            for token in batch:
                try:
                    outcome = self.send_to_device(token, payload)
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("Push to device failed", extra={"token": token[:16], "error": str(e)})
                    outcome = DeliveryResult.failed(self.channel, str(e))
                if outcome.success:
                    result.success += 1
                    result.message_ids.append(outcome.provider_message_id or "")
                else:
                    result.failure += 1
                    result.failed_tokens.append(token)
            logger.info(
                "Push batch sent",
                extra={"batch_size": len(batch), "success": result.success, "failure": result.failure},
            )
        return result

    @abstractmethod
    def send_to_device(self, token: str, payload: NotificationPayload) -> DeliveryResult:
        pass

    @abstractmethod
    def send_to_topic(self, topic: str, payload: NotificationPayload) -> DeliveryResult:
        pass


class LogPushSender(BasePushSender):
    """Logs push notifications instead of sending them."""

    def send_to_device(self, token: str, payload: NotificationPayload) -> DeliveryResult:
        logger.info("Push (log driver)", extra={"token": token[:16], "title": payload.title})
        return DeliveryResult.ok(self.channel, f"log-{uuid4().hex}")

    def send_to_topic(self, topic: str, payload: NotificationPayload) -> DeliveryResult:
        topic = normalize_topic_name(topic, self.topic_prefix)
        logger.info("Push to topic (log driver)", extra={"topic": topic, "title": payload.title})
        return DeliveryResult.ok(self.channel, f"log-{uuid4().hex}")


class FcmPushSender(BasePushSender):
    """Sends push notifications through the FCM HTTP v1 API."""

    def __init__(
        self,
        project_id: str,
        access_token: str,
        topic_batch_size: int = 1000,
        client: httpx.Client | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.project_id = project_id
        self.topic_batch_size = topic_batch_size
        self.client = client or httpx.Client(
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=self.timeout,
        )

    @property
    def send_url(self) -> str:
        return f"{FCM_API_BASE}/projects/{self.project_id}/messages:send"

    def build_message(self, payload: NotificationPayload) -> dict[str, Any]:
        data = stringify_data(payload.data)
        data.setdefault("type", payload.type)
        if payload.action_url:
            data.setdefault("click_action", payload.action_url)
        return {
            "notification": {"title": payload.title, "body": payload.message},
            "data": data,
        }

    def _post_message(self, message: dict[str, Any], validate_only: bool = False) -> DeliveryResult:
        response = self.client.post(
            self.send_url,
            json={"message": message, "validate_only": validate_only},
        )
        body = parse_json_body(response)
        if response.status_code >= 400:
            error = body.get("error") if isinstance(body.get("error"), dict) else {}
            return DeliveryResult.failed(
                self.channel,
                f"FCM error {error.get('status', response.status_code)}: "
                f"{error.get('message', response.reason_phrase)}",
            )
        return DeliveryResult.ok(self.channel, body.get("name"))

    def send_to_device(self, token: str, payload: NotificationPayload) -> DeliveryResult:
        return self._post_message({"token": token, **self.build_message(payload)})

    def send_to_topic(self, topic: str, payload: NotificationPayload) -> DeliveryResult:
        topic = normalize_topic_name(topic, self.topic_prefix)
        return self._post_message({"topic": topic, **self.build_message(payload)})

    def validate_device_token(self, token: str) -> bool:
        """Dry-run a message against ``token``."""
        try:
            result = self._post_message(
                {"token": token, "data": {"validate": "1"}},
                validate_only=True,
            )
        except (httpx.HTTPError, ValueError):
            return False
        return result.success

    def subscribe_to_topic(self, tokens: list[str], topic: str) -> bool:
        return self._manage_topic("batchAdd", tokens, topic)

    def unsubscribe_from_topic(self, tokens: list[str], topic: str) -> bool:
        return self._manage_topic("batchRemove", tokens, topic)

    def _manage_topic(self, action: str, tokens: list[str], topic: str) -> bool:
        topic = normalize_topic_name(topic, self.topic_prefix)
        ok = True
        for batch in chunked(list(tokens), self.topic_batch_size):
            try:
                response = self.client.post(
                    f"{IID_API_BASE}:{action}",
                    json={"to": f"/topics/{topic}", "registration_tokens": batch},
                    headers={"access_token_auth": "true"},
                )
                response.raise_for_status()
            except httpx.HTTPError as e:
                logger.error(
                    f"FCM topic {action} failed",
                    extra={"topic": topic, "batch_size": len(batch), "error": str(e)},
                )
                ok = False
        return ok
