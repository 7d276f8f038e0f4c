from __future__ import annotations

import asyncio

import pytest

from beacon.core.delivery_queue import DrainResult, QueueProcessor


class _CountingQueue:
    def __init__(self, fail_first: bool = False) -> None:
        self.drains = 0
        self.fail_first = fail_first

    def drain(self) -> DrainResult:
        self.drains += 1
        if self.fail_first and self.drains == 1:
            raise RuntimeError("store unavailable")
        return DrainResult()


async def _wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_start_drains_immediately() -> None:
    queue = _CountingQueue()
    processor = QueueProcessor(queue, interval_seconds=60)

    processor.start()
    try:
        await _wait_for(lambda: queue.drains == 1)
        assert processor.is_running
    finally:
        processor.stop()


@pytest.mark.asyncio
async def test_start_is_idempotent() -> None:
    queue = _CountingQueue()
    processor = QueueProcessor(queue, interval_seconds=60)

    processor.start()
    first_task = processor._task
    processor.start()
    try:
        assert processor._task is first_task
        await _wait_for(lambda: queue.drains == 1)
        await asyncio.sleep(0.05)
        assert queue.drains == 1
    finally:
        processor.stop()


@pytest.mark.asyncio
async def test_stop_cancels_and_clears_handle() -> None:
    queue = _CountingQueue()
    processor = QueueProcessor(queue, interval_seconds=0.01)

    processor.start()
    task = processor._task
    await _wait_for(lambda: queue.drains >= 1)
    processor.stop()
    await _wait_for(task.done)

    assert processor._task is None
    assert not processor.is_running
    assert task.cancelled()

    # A later start gets a fresh loop.
    processor.start()
    try:
        assert processor.is_running
    finally:
        processor.stop()


@pytest.mark.asyncio
async def test_stop_without_start_is_harmless() -> None:
    processor = QueueProcessor(_CountingQueue())
    processor.stop()
    assert not processor.is_running


@pytest.mark.asyncio
async def test_drain_error_does_not_stop_the_loop() -> None:
    queue = _CountingQueue(fail_first=True)
    processor = QueueProcessor(queue, interval_seconds=0.01)

    processor.start()
    try:
        await _wait_for(lambda: queue.drains >= 3)
        assert processor.is_running
    finally:
        processor.stop()
