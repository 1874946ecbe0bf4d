"""Priority job queue with redelivery.

The in-memory broker mirrors what the durable broker guarantees: a message is
owned by at most one consumer at a time, failed messages are redelivered with
exponential backoff until their attempt cap, and exhausted or non-retryable
messages are parked as dead letters.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Callable, Literal, Protocol

from mutate.core.schema import QueueJobPayload

logger = logging.getLogger(__name__)

Priority = Literal["low", "normal", "high"]

PRIORITIES: dict[str, int] = {"high": 1, "normal": 5, "low": 10}
LARGE_FILE_BYTES = 50 * 1024 * 1024
DEFAULT_ATTEMPTS = 3
LARGE_FILE_ATTEMPTS = 5


def attempts_for_file_size(size: int) -> int:
    return LARGE_FILE_ATTEMPTS if size > LARGE_FILE_BYTES else DEFAULT_ATTEMPTS


@dataclass(slots=True)
class QueueMessage:
    id: str
    payload: QueueJobPayload
    priority: int
    max_attempts: int
    sequence: int
    available_at: float = 0.0
    attempts: int = 0
    progress: int = 0
    last_error: str | None = None

    @property
    def redelivered(self) -> bool:
        return self.attempts > 1


class QueueBroker(Protocol):
    async def enqueue(
        self,
        payload: QueueJobPayload,
        *,
        priority: Priority = "normal",
        max_attempts: int | None = None,
    ) -> QueueMessage: ...

    async def receive(self, timeout: float | None = None) -> QueueMessage | None: ...

    async def ack(self, message: QueueMessage) -> None: ...

    async def nack(self, message: QueueMessage, error: BaseException, *, retryable: bool) -> None: ...

    async def report_progress(self, message: QueueMessage, progress: int) -> None: ...

    async def close(self) -> None: ...


@dataclass(slots=True)
class QueueStats:
    waiting: int = 0
    in_flight: int = 0
    completed: int = 0
    dead: int = 0
    redelivered: int = 0


class InMemoryQueueBroker:
    def __init__(
        self,
        *,
        backoff_delay: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backoff_delay = backoff_delay
        self._clock = clock
        self._sequence = itertools.count()
        self._waiting: dict[str, QueueMessage] = {}
        self._in_flight: dict[str, QueueMessage] = {}
        self._dead: list[QueueMessage] = []
        self._completed = 0
        self._redelivered = 0
        self._closed = False
        self._changed = asyncio.Condition()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _next_ready(self) -> QueueMessage | None:
        now = self._clock()
        ready = [message for message in self._waiting.values() if message.available_at <= now]
        if not ready:
            return None
        return min(ready, key=lambda message: (message.priority, message.sequence))

    def _seconds_until_next(self) -> float | None:
        if not self._waiting:
            return None
        soonest = min(message.available_at for message in self._waiting.values())
        return max(soonest - self._clock(), 0.0)

    def retry_delay(self, attempts: int) -> float:
        return self._backoff_delay * (2 ** max(attempts - 1, 0))

    # ------------------------------------------------------------------
    # broker contract
    # ------------------------------------------------------------------
    async def enqueue(
        self,
        payload: QueueJobPayload,
        *,
        priority: Priority = "normal",
        max_attempts: int | None = None,
    ) -> QueueMessage:
        if priority not in PRIORITIES:
            raise ValueError(f"Unknown priority {priority!r}")
        message = QueueMessage(
            id=payload.job_id,
            payload=payload,
            priority=PRIORITIES[priority],
            max_attempts=max_attempts or attempts_for_file_size(payload.file_size),
            sequence=next(self._sequence),
            available_at=self._clock(),
        )
        async with self._changed:
            if message.id in self._waiting or message.id in self._in_flight:
                raise ValueError(f"Job {message.id} is already queued")
            self._waiting[message.id] = message
            self._changed.notify()
        logger.info("Queued job %s (priority=%s, attempts=%s)", message.id, priority, message.max_attempts)
        return message

    async def receive(self, timeout: float | None = None) -> QueueMessage | None:
        deadline = None if timeout is None else self._clock() + timeout
        async with self._changed:
            while True:
                if self._closed:
                    return None
                message = self._next_ready()
                if message is not None:
                    del self._waiting[message.id]
                    message.attempts += 1
                    self._in_flight[message.id] = message
                    return message

                waits: list[float] = []
                until_next = self._seconds_until_next()
                if until_next is not None:
                    waits.append(until_next)
                if deadline is not None:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        return None
                    waits.append(remaining)
                try:
                    if waits:
                        await asyncio.wait_for(self._changed.wait(), timeout=min(waits))
                    else:
                        await self._changed.wait()
                except asyncio.TimeoutError:
                    continue

    async def ack(self, message: QueueMessage) -> None:
        async with self._changed:
            self._in_flight.pop(message.id, None)
            self._completed += 1

    async def nack(self, message: QueueMessage, error: BaseException, *, retryable: bool) -> None:
        async with self._changed:
            self._in_flight.pop(message.id, None)
            message.last_error = str(error) or error.__class__.__name__
            if retryable and message.attempts < message.max_attempts:
                delay = self.retry_delay(message.attempts)
                message.available_at = self._clock() + delay
                self._waiting[message.id] = message
                self._redelivered += 1
                self._changed.notify()
                logger.warning(
                    "Job %s failed on attempt %s/%s, redelivering in %.1fs: %s",
                    message.id,
                    message.attempts,
                    message.max_attempts,
                    delay,
                    message.last_error,
                )
                return
            self._dead.append(message)
        logger.error(
            "Job %s failed permanently after %s attempt(s): %s",
            message.id,
            message.attempts,
            message.last_error,
        )

    async def report_progress(self, message: QueueMessage, progress: int) -> None:
        message.progress = max(message.progress, progress)

    async def close(self) -> None:
        async with self._changed:
            self._closed = True
            self._changed.notify_all()

    def dead_letters(self) -> list[QueueMessage]:
        return list(self._dead)

    def stats(self) -> QueueStats:
        return QueueStats(
            waiting=len(self._waiting),
            in_flight=len(self._in_flight),
            completed=self._completed,
            dead=len(self._dead),
            redelivered=self._redelivered,
        )
