"""Bounded worker pool: execution slots, completion tracking and a failure sink."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import AsyncIterator, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerFailure:
    message: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.message}: {type(self.error).__name__}: {self.error}"


class StageError(RuntimeError):
    """Raised by a pipeline stage to report a failure with a readable message."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FailureSink:
    """Bounded queue of failures that never blocks the reporter."""

    def __init__(self, maxsize: int = 50) -> None:
        self._queue: asyncio.Queue[WorkerFailure] = asyncio.Queue(maxsize=maxsize)
        self._closed = asyncio.Event()
        self.reported = 0
        self.dropped = 0

    def report(self, failure: WorkerFailure) -> bool:
        try:
            self._queue.put_nowait(failure)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        self.reported += 1
        return True

    def close(self) -> None:
        self._closed.set()

    async def drain(self) -> AsyncIterator[WorkerFailure]:
        """Yield failures until the sink is closed and empty."""
        while True:
            if not self._queue.empty():
                yield self._queue.get_nowait()
                continue
            if self._closed.is_set():
                return
            getter = asyncio.ensure_future(self._queue.get())
            closer = asyncio.ensure_future(self._closed.wait())
            done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            if getter in done:
                closer.cancel()
                yield getter.result()
            else:
                getter.cancel()


class WorkerPool:
    """Runs blocking jobs on at most ``capacity`` threads at a time.

    ``spawn`` waits for a free slot before it creates the task, so a caller
    looping over work is throttled by the pool. Every exception a job raises
    is turned into one ``WorkerFailure`` on the sink.
    """

    def __init__(self, capacity: int = 100, failure_buffer: int = 50) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.sink = FailureSink(maxsize=failure_buffer)
        self._slots = asyncio.Semaphore(capacity)
        self._executor = ThreadPoolExecutor(max_workers=capacity, thread_name_prefix="worker")
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return self._pending

    async def spawn(self, job: Callable[[], object], *, name: str | None = None) -> asyncio.Task:
        await self._slots.acquire()
        self._pending += 1
        self._idle.clear()
        task = asyncio.create_task(self._run(job, name or "task"), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, job: Callable[[], object], name: str) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(self._executor, job)
        except StageError as exc:
            self.sink.report(WorkerFailure(exc.message, exc.__cause__ or exc))
        except Exception as exc:
            logger.exception("Unexpected fault in %s", name)
            self.sink.report(WorkerFailure("Unexpected fault in worker task", exc))
        finally:
            self._pending -= 1
            if self._pending == 0:
                self._idle.set()
            self._slots.release()

    async def join(self) -> None:
        await self._idle.wait()

    async def close_when_idle(self) -> None:
        """Monitor: wait for in-flight tasks, then close the failure sink."""
        await self.join()
        self.sink.close()

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)
