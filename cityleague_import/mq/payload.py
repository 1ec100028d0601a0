"""Encoding of official events into queue message content (base64 of JSON)."""

from __future__ import annotations

import base64
import binascii

from pydantic import ValidationError

from cityleague_import.mq.client import Message
from cityleague_import.schemas import OfficialEvent


class MalformedMessage(ValueError):
    pass


def encode_event(event: OfficialEvent) -> str:
    return base64.b64encode(event.model_dump_json().encode("utf-8")).decode("ascii")


def decode_event(message: Message) -> OfficialEvent:
    try:
        raw = base64.b64decode(message.content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedMessage(f"Invalid base64 in message {message.id}: {exc}") from exc
    try:
        return OfficialEvent.model_validate_json(raw)
    except ValidationError as exc:
        raise MalformedMessage(f"Invalid JSON in message {message.id}: {exc}") from exc
