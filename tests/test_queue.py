from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from mutate.core.schema import QueueJobPayload
from mutate.infrastructure import InMemoryQueueBroker, attempts_for_file_size
from mutate.infrastructure.queue import LARGE_FILE_BYTES


def _payload(job_id: str) -> QueueJobPayload:
    return QueueJobPayload.from_file(
        job_id=job_id,
        organization_id="org",
        configuration_id="cfg",
        file_name=f"{job_id}.xlsx",
        data=b"workbook",
    )


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_higher_priority_is_received_first_then_fifo():
    broker = InMemoryQueueBroker()

    async def scenario():
        await broker.enqueue(_payload("low"), priority="low")
        await broker.enqueue(_payload("normal-1"))
        await broker.enqueue(_payload("high"), priority="high")
        await broker.enqueue(_payload("normal-2"))
        received = []
        for _ in range(4):
            message = await broker.receive(timeout=0)
            received.append(message.id)
            await broker.ack(message)
        return received

    assert asyncio.run(scenario()) == ["high", "normal-1", "normal-2", "low"]
    assert broker.stats().completed == 4


def test_enqueue_rejects_duplicates_and_unknown_priorities():
    broker = InMemoryQueueBroker()

    async def scenario():
        await broker.enqueue(_payload("job"))
        with pytest.raises(ValueError):
            await broker.enqueue(_payload("job"))
        with pytest.raises(ValueError):
            await broker.enqueue(_payload("other"), priority="urgent")

    asyncio.run(scenario())


def test_retryable_failure_is_redelivered_after_backoff():
    clock = FakeClock()
    broker = InMemoryQueueBroker(backoff_delay=5.0, clock=clock)

    async def scenario():
        await broker.enqueue(_payload("job"))
        first = await broker.receive(timeout=0)
        await broker.nack(first, RuntimeError("storage offline"), retryable=True)

        assert await broker.receive(timeout=0) is None
        clock.now += 5.0
        second = await broker.receive(timeout=0)
        return first, second

    first, second = asyncio.run(scenario())

    assert second is first
    assert second.attempts == 2
    assert second.redelivered
    assert second.last_error == "storage offline"
    assert broker.stats().redelivered == 1


def test_message_is_dead_lettered_after_max_attempts():
    broker = InMemoryQueueBroker(backoff_delay=0)

    async def scenario():
        await broker.enqueue(_payload("job"), max_attempts=2)
        for _ in range(2):
            message = await broker.receive(timeout=0)
            await broker.nack(message, RuntimeError("boom"), retryable=True)
        return await broker.receive(timeout=0)

    assert asyncio.run(scenario()) is None
    (dead,) = broker.dead_letters()
    assert dead.id == "job"
    assert dead.attempts == 2
    assert broker.stats().dead == 1


def test_non_retryable_failure_is_dead_lettered_immediately():
    broker = InMemoryQueueBroker(backoff_delay=0)

    async def scenario():
        await broker.enqueue(_payload("job"))
        message = await broker.receive(timeout=0)
        await broker.nack(message, ValueError(), retryable=False)

    asyncio.run(scenario())

    (dead,) = broker.dead_letters()
    assert dead.attempts == 1
    assert dead.last_error == "ValueError"


def test_receive_times_out_on_empty_queue():
    broker = InMemoryQueueBroker()

    assert asyncio.run(broker.receive(timeout=0.01)) is None


def test_close_wakes_waiting_consumers():
    broker = InMemoryQueueBroker()

    async def scenario():
        waiter = asyncio.create_task(broker.receive())
        await asyncio.sleep(0)
        await broker.close()
        return await asyncio.wait_for(waiter, timeout=1)

    assert asyncio.run(scenario()) is None


def test_enqueue_wakes_waiting_consumer():
    broker = InMemoryQueueBroker()

    async def scenario():
        waiter = asyncio.create_task(broker.receive())
        await asyncio.sleep(0)
        await broker.enqueue(_payload("job"))
        return await asyncio.wait_for(waiter, timeout=1)

    message = asyncio.run(scenario())
    assert message.id == "job"
    assert broker.stats().in_flight == 1


def test_progress_only_moves_forward():
    broker = InMemoryQueueBroker()

    async def scenario():
        await broker.enqueue(_payload("job"))
        message = await broker.receive(timeout=0)
        await broker.report_progress(message, 70)
        await broker.report_progress(message, 30)
        return message

    assert asyncio.run(scenario()).progress == 70


def test_attempts_scale_with_file_size():
    assert attempts_for_file_size(1024) == 3
    assert attempts_for_file_size(LARGE_FILE_BYTES + 1) == 5


def test_retry_delay_doubles_per_attempt():
    broker = InMemoryQueueBroker(backoff_delay=5.0)

    assert [broker.retry_delay(attempt) for attempt in (1, 2, 3)] == [5.0, 10.0, 20.0]
