from __future__ import annotations

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MQ_BASE_URL = "https://simplemq.tk1b.api.sacloud.jp/v1"
DEFAULT_PLAYERS_BASE_URL = "https://players.pokemon-card.com"
DEFAULT_OFFICIAL_EVENTS_BASE_URL = "https://beta.vsrecorder.mobi/api/v1beta"
DEFAULT_DECK_IMAGE_BASE_URL = "https://www.pokemon-card.com/deck/deckView.php/deckID"
DEFAULT_S3_ENDPOINT_URL = "https://s3.isk01.sakurastorage.jp"
DEFAULT_S3_BUCKET = "vsrecorder"


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Settings:
    database_url: str
    mq_name: str
    mq_token: str
    mq_base_url: str = DEFAULT_MQ_BASE_URL
    players_base_url: str = DEFAULT_PLAYERS_BASE_URL
    official_events_base_url: str = DEFAULT_OFFICIAL_EVENTS_BASE_URL
    deck_image_base_url: str = DEFAULT_DECK_IMAGE_BASE_URL
    s3_endpoint_url: str = DEFAULT_S3_ENDPOINT_URL
    s3_bucket: str = DEFAULT_S3_BUCKET
    consumer_concurrency: int = 100
    consumer_failure_buffer: int = 50
    receive_max_failures: int = 10
    log_level: str = "INFO"


def _require(name: str) -> str:
    value = (os.getenv(name) or "").strip()
    if not value:
        raise ConfigError(f"Missing required environment variable {name}")
    return value


def _int_env(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc
    if value < 1:
        raise ConfigError(f"{name} must be >= 1, got {value}")
    return value


def _str_env(name: str, default: str) -> str:
    return ((os.getenv(name) or "").strip() or default).rstrip("/")


def load_settings(*, require_database: bool = True) -> Settings:
    """Read settings from the process environment.

    The producer has no database, so it passes ``require_database=False``.
    """

    database_url = _require("DATABASE_URL") if require_database else (os.getenv("DATABASE_URL") or "")
    settings = Settings(
        database_url=database_url,
        mq_name=_require("MQ_NAME"),
        mq_token=_require("MQ_TOKEN"),
        mq_base_url=_str_env("MQ_BASE_URL", DEFAULT_MQ_BASE_URL),
        players_base_url=_str_env("PLAYERS_BASE_URL", DEFAULT_PLAYERS_BASE_URL),
        official_events_base_url=_str_env(
            "OFFICIAL_EVENTS_BASE_URL", DEFAULT_OFFICIAL_EVENTS_BASE_URL
        ),
        deck_image_base_url=_str_env("DECK_IMAGE_BASE_URL", DEFAULT_DECK_IMAGE_BASE_URL),
        s3_endpoint_url=_str_env("S3_ENDPOINT_URL", DEFAULT_S3_ENDPOINT_URL),
        s3_bucket=(os.getenv("S3_BUCKET") or "").strip() or DEFAULT_S3_BUCKET,
        consumer_concurrency=_int_env("CONSUMER_CONCURRENCY", 100),
        consumer_failure_buffer=_int_env("CONSUMER_FAILURE_BUFFER", 50),
        receive_max_failures=_int_env("RECEIVE_MAX_FAILURES", 10),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    )
    logger.debug(
        "Settings loaded: mq_name=%s concurrency=%d failure_buffer=%d bucket=%s",
        settings.mq_name,
        settings.consumer_concurrency,
        settings.consumer_failure_buffer,
        settings.s3_bucket,
    )
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
