"""CLI entrypoint: drain the result-import queue once."""

from __future__ import annotations

import asyncio
import logging
from functools import partial

import boto3
import requests
from requests.adapters import HTTPAdapter
from dotenv import load_dotenv

from cityleague_import.config import ConfigError, Settings, configure_logging, load_settings
from cityleague_import.consumer.dispatcher import Dispatcher, DrainSummary
from cityleague_import.consumer.worker import ResultImporter
from cityleague_import.db import make_engine, make_session_factory
from cityleague_import.mq.client import SimpleMQClient
from cityleague_import.repository import ResultRepository
from cityleague_import.storage.deck_images import DeckImageStore
from cityleague_import.upstream.players import fetch_event_results

logger = logging.getLogger(__name__)

USER_AGENT = "cityleague-import/1.0"


def build_http_session(pool_size: int) -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers["User-Agent"] = USER_AGENT
    return session


async def drain_queue(settings: Settings) -> DrainSummary:
    engine = make_engine(settings.database_url, pool_size=min(settings.consumer_concurrency, 20))
    session_factory = make_session_factory(engine)
    http = build_http_session(settings.consumer_concurrency)
    s3_client = boto3.client("s3", endpoint_url=settings.s3_endpoint_url)

    try:
        queue = SimpleMQClient(
            http,
            settings.mq_name,
            settings.mq_token,
            base_url=settings.mq_base_url,
        )
        importer = ResultImporter(
            fetch_results=partial(
                fetch_event_results, http, base_url=settings.players_base_url
            ),
            repository=ResultRepository(session_factory),
            deck_images=DeckImageStore(
                s3_client,
                http,
                bucket=settings.s3_bucket,
                source_base_url=settings.deck_image_base_url,
            ),
            queue=queue,
        )
        dispatcher = Dispatcher(
            queue,
            importer.process,
            concurrency=settings.consumer_concurrency,
            failure_buffer=settings.consumer_failure_buffer,
            receive_max_failures=settings.receive_max_failures,
        )
        return await dispatcher.run()
    finally:
        http.close()
        engine.dispose()


def main() -> None:
    load_dotenv()
    try:
        settings = load_settings()
    except ConfigError as exc:
        configure_logging()
        logger.error("Failed to load configuration: %s", exc)
        raise SystemExit(1)

    configure_logging(settings.log_level)
    logger.info(
        "Starting drain of queue=%s concurrency=%d",
        settings.mq_name,
        settings.consumer_concurrency,
    )
    try:
        summary = asyncio.run(drain_queue(settings))
    except KeyboardInterrupt:
        logger.info("Drain interrupted.")
        raise SystemExit(130)

    if summary.receive_aborted:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
