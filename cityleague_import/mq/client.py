"""HTTP client for the SimpleMQ message queue."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import requests
from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15
MAX_ERROR_SNIPPET = 300


class MQError(RuntimeError):
    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MQMessageNotFound(MQError):
    pass


def _from_unix_millis(value: Any) -> Any:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    return value


class Message(BaseModel):
    id: str
    content: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    acquired_at: Optional[datetime] = None
    visibility_timeout_at: Optional[datetime] = None

    @field_validator(
        "created_at",
        "updated_at",
        "expires_at",
        "acquired_at",
        "visibility_timeout_at",
        mode="before",
    )
    @classmethod
    def _parse_millis(cls, value: Any) -> Any:
        return _from_unix_millis(value)


class SendMessageResponse(BaseModel):
    result: str = ""
    message: Optional[Message] = None


class ReceiveMessageResponse(BaseModel):
    result: str = ""
    messages: Optional[list[Message]] = None


def _truncate(value: str, limit: int = MAX_ERROR_SNIPPET) -> str:
    if len(value) <= limit:
        return value
    return value[:limit] + "...<truncated>"


class SimpleMQClient:
    """Send, receive, extend and delete messages on one named queue.

    The ``requests.Session`` is injected so one connection pool is shared by
    every caller for the lifetime of a run.
    """

    def __init__(
        self,
        session: requests.Session,
        queue_name: str,
        token: str,
        *,
        base_url: str = "https://simplemq.tk1b.api.sacloud.jp/v1",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._session = session
        self._queue_name = queue_name
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _messages_url(self, message_id: str | None = None) -> str:
        url = f"{self._base_url}/queues/{self._queue_name}/messages"
        if message_id is not None:
            url = f"{url}/{message_id}"
        return url

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._token}",
        }

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(
                method,
                url,
                headers=self._headers(),
                timeout=self._timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise MQError(f"{method} {url} failed: {exc}") from exc

    @staticmethod
    def _raise_for_status(response: requests.Response, action: str) -> None:
        if response.status_code == 200:
            return
        body = _truncate(response.text or "")
        if response.status_code == 404:
            raise MQMessageNotFound(f"{action}: not found", status=404)
        raise MQError(
            f"{action}: unexpected status={response.status_code} body={body}",
            status=response.status_code,
        )

    def send_message(self, content: str) -> SendMessageResponse:
        """Enqueue one message; ``content`` is already base64 encoded."""
        response = self._request("POST", self._messages_url(), json={"content": content})
        self._raise_for_status(response, "send message")
        try:
            return SendMessageResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise MQError(f"send message: invalid response body: {exc}") from exc

    def receive_message(self) -> list[Message]:
        response = self._request("GET", self._messages_url())
        self._raise_for_status(response, "receive message")
        try:
            payload = ReceiveMessageResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise MQError(f"receive message: invalid response body: {exc}") from exc
        return payload.messages or []

    def update_message_timeout(self, message_id: str) -> None:
        """Push the visibility timeout of a received message further out."""
        response = self._request("PUT", self._messages_url(message_id))
        self._raise_for_status(response, f"update timeout of message {message_id}")

    def delete_message(self, message_id: str) -> None:
        response = self._request("DELETE", self._messages_url(message_id))
        self._raise_for_status(response, f"delete message {message_id}")
        logger.debug("Deleted message %s from queue %s", message_id, self._queue_name)
