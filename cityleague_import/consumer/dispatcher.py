"""Drains the queue once and fans messages out to the worker pool."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, Protocol

from cityleague_import.consumer.pool import WorkerPool
from cityleague_import.mq.client import Message, MQError
from cityleague_import.mq.payload import MalformedMessage, decode_event
from cityleague_import.schemas import OfficialEvent

logger = logging.getLogger(__name__)

RECEIVE_BACKOFF_INITIAL_SECONDS = 0.5
RECEIVE_BACKOFF_MAX_SECONDS = 30.0


class MessageReceiver(Protocol):
    def receive_message(self) -> list[Message]: ...


@dataclass
class DrainSummary:
    received: int = 0
    dispatched: int = 0
    malformed: int = 0
    failures: int = 0
    failures_dropped: int = 0
    receive_errors: int = 0
    receive_aborted: bool = False


class Dispatcher:
    """One drain of the queue.

    ``process`` is the blocking per-message pipeline, called as
    ``process(message_id, event)`` on a pool thread.
    """

    def __init__(
        self,
        receiver: MessageReceiver,
        process: Callable[[str, OfficialEvent], object],
        *,
        concurrency: int = 100,
        failure_buffer: int = 50,
        receive_max_failures: int = 10,
        backoff_initial: float = RECEIVE_BACKOFF_INITIAL_SECONDS,
        backoff_max: float = RECEIVE_BACKOFF_MAX_SECONDS,
    ) -> None:
        self._receiver = receiver
        self._process = process
        self._concurrency = concurrency
        self._failure_buffer = failure_buffer
        self._receive_max_failures = receive_max_failures
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max

    async def _receive(self, summary: DrainSummary) -> list[Message] | None:
        """Receive one batch, backing off on errors.

        Returns None when consecutive failures reach the limit.
        """
        consecutive = 0
        delay = self._backoff_initial
        while True:
            try:
                return await asyncio.to_thread(self._receiver.receive_message)
            except MQError as exc:
                consecutive += 1
                summary.receive_errors += 1
                if consecutive >= self._receive_max_failures:
                    logger.error(
                        "Failed to receive message from MQ %d times in a row, giving up: %s",
                        consecutive,
                        exc,
                    )
                    return None
                logger.warning(
                    "Failed to receive message from MQ (%d/%d): %s. Retrying in %.1fs",
                    consecutive,
                    self._receive_max_failures,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._backoff_max)

    async def run(self) -> DrainSummary:
        summary = DrainSummary()
        pool = WorkerPool(capacity=self._concurrency, failure_buffer=self._failure_buffer)
        try:
            while True:
                messages = await self._receive(summary)
                if messages is None:
                    summary.receive_aborted = True
                    break
                if not messages:
                    break

                for message in messages:
                    summary.received += 1
                    try:
                        event = decode_event(message)
                    except MalformedMessage as exc:
                        # Not deleted; the queue keeps redelivering it.
                        summary.malformed += 1
                        logger.error("%s, skipping", exc)
                        continue

                    await pool.spawn(
                        partial(self._process, message.id, event),
                        name=f"message-{message.id}",
                    )
                    summary.dispatched += 1

            monitor = asyncio.create_task(pool.close_when_idle())
            async for failure in pool.sink.drain():
                summary.failures += 1
                logger.error("%s: %s", failure.message, failure.error)
            await monitor
        finally:
            pool.shutdown()

        summary.failures_dropped = pool.sink.dropped
        logger.info(
            "Drain finished: received=%d dispatched=%d malformed=%d failures=%d "
            "failures_dropped=%d receive_errors=%d",
            summary.received,
            summary.dispatched,
            summary.malformed,
            summary.failures,
            summary.failures_dropped,
            summary.receive_errors,
        )
        return summary

