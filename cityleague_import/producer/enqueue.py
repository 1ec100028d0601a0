"""Enqueue the day's official events for result import."""

from __future__ import annotations

import argparse
import logging
import threading
from datetime import date, datetime
from typing import Protocol

import requests
from dotenv import load_dotenv

from cityleague_import.config import ConfigError, configure_logging, load_settings
from cityleague_import.mq.client import MQError, SendMessageResponse, SimpleMQClient
from cityleague_import.mq.payload import encode_event
from cityleague_import.schemas import OfficialEvent
from cityleague_import.upstream.official_events import (
    OfficialEventsAPIError,
    fetch_official_events,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 5
INITIAL_INTERVAL_SECONDS = 0.5


class MessageSender(Protocol):
    def send_message(self, content: str) -> SendMessageResponse: ...


class SendCancelled(RuntimeError):
    pass


class EnqueueError(RuntimeError):
    pass


def send_message_with_retry(
    queue: MessageSender,
    content: str,
    *,
    stop_event: threading.Event | None = None,
    max_retries: int = MAX_RETRIES,
    initial_interval: float = INITIAL_INTERVAL_SECONDS,
) -> SendMessageResponse:
    """Send one message, retrying with doubling waits.

    At most ``max_retries`` retries follow the first attempt. Setting
    ``stop_event`` aborts the wait immediately with ``SendCancelled``.
    """
    stop_event = stop_event or threading.Event()
    interval = initial_interval
    for attempt in range(max_retries + 1):
        try:
            return queue.send_message(content)
        except MQError as exc:
            if attempt == max_retries:
                raise
            logger.warning(
                "Send message failed (attempt %d/%d): %s. Retrying in %.1fs...",
                attempt,
                max_retries,
                exc,
                interval,
            )
        if stop_event.is_set() or stop_event.wait(interval):
            raise SendCancelled("send cancelled while waiting to retry")
        interval *= 2
    raise AssertionError("unreachable")


def enqueue_events(
    queue: MessageSender,
    events: list[OfficialEvent],
    *,
    stop_event: threading.Event | None = None,
) -> int:
    sent = 0
    for event in events:
        try:
            send_message_with_retry(queue, encode_event(event), stop_event=stop_event)
        except MQError as exc:
            raise EnqueueError(f"Failed to send message to MQ [id: {event.id}]: {exc}") from exc
        sent += 1
        logger.debug("Enqueued official event %d (%s)", event.id, event.title)
    return sent


def enqueue_events_for_date(
    session: requests.Session,
    queue: MessageSender,
    target_date: date,
    *,
    base_url: str,
    stop_event: threading.Event | None = None,
) -> int:
    events = fetch_official_events(session, target_date, base_url=base_url)
    sent = enqueue_events(queue, events, stop_event=stop_event)
    logger.info("Enqueued %d official event(s) for %s", sent, target_date.isoformat())
    return sent


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Enqueue official events for result import.")
    date_group = parser.add_mutually_exclusive_group()
    date_group.add_argument("--today", action="store_true", help="Use today's date (default)")
    date_group.add_argument("--date", help="Date YYYY-MM-DD")
    parser.add_argument(
        "--every-minutes",
        type=int,
        default=0,
        help="Repeat every N minutes for the current day until interrupted.",
    )
    args = parser.parse_args(argv)
    if args.every_minutes < 0:
        parser.error("--every-minutes must be >= 0")
    if args.date and args.every_minutes:
        parser.error("--date cannot be combined with --every-minutes")
    return args


def _resolve_date(args: argparse.Namespace) -> date:
    if args.date:
        return datetime.strptime(args.date, "%Y-%m-%d").date()
    return date.today()


def run_cycles(
    session: requests.Session,
    queue: MessageSender,
    args: argparse.Namespace,
    *,
    base_url: str,
    stop_event: threading.Event,
) -> int:
    """Run one enqueue cycle, or one every ``args.every_minutes``.

    Returns the process exit status.
    """
    while True:
        target_date = _resolve_date(args)
        try:
            try:
                enqueue_events_for_date(
                    session,
                    queue,
                    target_date,
                    base_url=base_url,
                    stop_event=stop_event,
                )
            except (OfficialEventsAPIError, EnqueueError) as exc:
                logger.error("Enqueue for %s failed: %s", target_date.isoformat(), exc)
                if not args.every_minutes:
                    return 1
            if not args.every_minutes or stop_event.wait(args.every_minutes * 60):
                return 0
        except SendCancelled:
            logger.info("Producer cancelled while retrying a send.")
            return 130
        except KeyboardInterrupt:
            logger.info("Producer interrupted.")
            stop_event.set()
            return 130


def main() -> None:
    load_dotenv()
    args = _parse_args()
    try:
        settings = load_settings(require_database=False)
    except ConfigError as exc:
        configure_logging()
        logger.error("Failed to load configuration: %s", exc)
        raise SystemExit(1)
    configure_logging(settings.log_level)

    with requests.Session() as session:
        queue = SimpleMQClient(
            session,
            settings.mq_name,
            settings.mq_token,
            base_url=settings.mq_base_url,
        )
        status = run_cycles(
            session,
            queue,
            args,
            base_url=settings.official_events_base_url,
            stop_event=threading.Event(),
        )
    if status:
        raise SystemExit(status)


if __name__ == "__main__":
    main()
