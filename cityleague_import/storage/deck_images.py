"""Deck list images kept as JPEG objects in S3-compatible storage."""

from __future__ import annotations

import logging
from typing import Any

import requests
from botocore.exceptions import BotoCoreError, ClientError

from cityleague_import.imaging import ImageConversionError, convert_to_jpeg

logger = logging.getLogger(__name__)

DECK_IMAGE_KEY_TEMPLATE = "images/decks/{deck_code}.jpg"
DEFAULT_TIMEOUT_SECONDS = 20
_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class DeckImageError(RuntimeError):
    pass


def deck_image_key(deck_code: str) -> str:
    return DECK_IMAGE_KEY_TEMPLATE.format(deck_code=deck_code)


def _is_not_found(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    return str(error.get("Code", "")) in _NOT_FOUND_CODES


class DeckImageStore:
    """Ensures each deck code has exactly one converted image in the bucket.

    ``s3_client`` is a boto3 S3 client; boto3 clients are safe to share
    between threads.
    """

    def __init__(
        self,
        s3_client: Any,
        http_session: requests.Session,
        *,
        bucket: str = "vsrecorder",
        source_base_url: str = "https://www.pokemon-card.com/deck/deckView.php/deckID",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._s3 = s3_client
        self._http = http_session
        self._bucket = bucket
        self._source_base_url = source_base_url.rstrip("/")
        self._timeout = timeout

    def exists(self, deck_code: str) -> bool:
        key = deck_image_key(deck_code)
        try:
            self._s3.head_object(Bucket=self._bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                return False
            raise DeckImageError(f"existence check for {key} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise DeckImageError(f"existence check for {key} failed: {exc}") from exc
        return True

    def fetch_source(self, deck_code: str) -> bytes:
        url = f"{self._source_base_url}/{deck_code}.png"
        try:
            response = self._http.get(url, timeout=self._timeout)
        except requests.RequestException as exc:
            raise DeckImageError(f"deck image download {url} failed: {exc}") from exc
        if response.status_code != 200:
            raise DeckImageError(
                f"deck image download {url} returned status={response.status_code}"
            )
        return response.content

    def put(self, deck_code: str, jpeg_bytes: bytes) -> None:
        key = deck_image_key(deck_code)
        try:
            self._s3.put_object(
                Bucket=self._bucket,
                Key=key,
                Body=jpeg_bytes,
                ACL="public-read",
                ContentType="image/jpeg",
            )
        except (ClientError, BotoCoreError) as exc:
            raise DeckImageError(f"upload of {key} failed: {exc}") from exc

    def ensure_deck_image(self, deck_code: str) -> bool:
        """Upload the deck image unless it is already stored.

        Returns True when an upload happened.
        """
        if self.exists(deck_code):
            logger.debug("Deck image %s already stored, skipping", deck_code)
            return False

        source = self.fetch_source(deck_code)
        try:
            jpeg_bytes = convert_to_jpeg(source)
        except ImageConversionError as exc:
            raise DeckImageError(f"deck image {deck_code} could not be converted: {exc}") from exc
        self.put(deck_code, jpeg_bytes)
        logger.info("Uploaded deck image %s (%d bytes)", deck_image_key(deck_code), len(jpeg_bytes))
        return True
