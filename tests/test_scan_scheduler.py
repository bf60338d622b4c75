import asyncio

import pytest

from scanguard.datatypes.detection_datatypes import DetectionResult
from scanguard.datatypes.image_datatypes import ImageRef, ScanRequest
from scanguard.detection.errors import SchedulerShutdown
from scanguard.detection.scan_scheduler import ScanScheduler


def _request(tag: bytes) -> ScanRequest:
    return ScanRequest(image_ref=ImageRef(data=tag))


def _result(tag: bytes) -> DetectionResult:
    return DetectionResult(
        flagged=False,
        requires_review=False,
        confidence=0.0,
        method=tag.decode(),
        perceptual_hash="",
        processing_time_ms=0,
    )


class GatedScanner:
    """Scanner whose scans block until released; records concurrency."""

    def __init__(self):
        self.active = 0
        self.max_active = 0
        self.started = []
        self.gates = {}

    async def scan(self, request):
        tag = request.image_ref.data
        self.started.append(tag)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        gate = self.gates.setdefault(tag, asyncio.Event())
        try:
            await gate.wait()
            if tag.startswith(b"fail"):
                raise RuntimeError(f"scan of {tag!r} failed")
            return _result(tag)
        finally:
            self.active -= 1

    def release(self, tag):
        self.gates.setdefault(tag, asyncio.Event()).set()


async def _settle():
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_concurrency_bound_and_fifo_admission():
    scanner = GatedScanner()
    scheduler = ScanScheduler(scanner, max_concurrent=2)
    tags = [b"a", b"b", b"c", b"d", b"e"]
    tasks = [asyncio.create_task(scheduler.submit(_request(t))) for t in tags]
    await _settle()

    assert scanner.started == [b"a", b"b"]
    assert scheduler.in_flight_count == 2
    assert scheduler.pending_count == 3

    scanner.release(b"b")
    await _settle()
    assert scanner.started == [b"a", b"b", b"c"]

    for t in tags:
        scanner.release(t)
    results = await asyncio.gather(*tasks)

    assert [r.method for r in results] == ["a", "b", "c", "d", "e"]
    assert scanner.max_active == 2
    assert scheduler.in_flight_count == 0
    assert scheduler.pending_count == 0


@pytest.mark.asyncio
async def test_failure_only_rejects_its_caller():
    scanner = GatedScanner()
    scheduler = ScanScheduler(scanner, max_concurrent=1)
    failing = asyncio.create_task(scheduler.submit(_request(b"fail-1")))
    ok = asyncio.create_task(scheduler.submit(_request(b"ok")))
    await _settle()

    scanner.release(b"fail-1")
    scanner.release(b"ok")

    with pytest.raises(RuntimeError, match="fail-1"):
        await failing
    assert (await ok).method == "ok"
    assert scheduler.in_flight_count == 0


@pytest.mark.asyncio
async def test_cancelled_queued_request_is_skipped():
    scanner = GatedScanner()
    scheduler = ScanScheduler(scanner, max_concurrent=1)
    first = asyncio.create_task(scheduler.submit(_request(b"first")))
    abandoned = asyncio.create_task(scheduler.submit(_request(b"abandoned")))
    last = asyncio.create_task(scheduler.submit(_request(b"last")))
    await _settle()

    abandoned.cancel()
    await _settle()
    scanner.release(b"first")
    scanner.release(b"last")

    await first
    await last
    assert b"abandoned" not in scanner.started


@pytest.mark.asyncio
async def test_shutdown_rejects_queued_requests():
    scanner = GatedScanner()
    scheduler = ScanScheduler(scanner, max_concurrent=1)
    running = asyncio.create_task(scheduler.submit(_request(b"running")))
    queued = asyncio.create_task(scheduler.submit(_request(b"queued")))
    await _settle()

    shutdown = asyncio.create_task(scheduler.shutdown())
    await _settle()
    scanner.release(b"running")
    await shutdown

    assert (await running).method == "running"
    with pytest.raises(SchedulerShutdown):
        await queued
    with pytest.raises(SchedulerShutdown):
        await scheduler.submit(_request(b"late"))


def test_invalid_bound():
    with pytest.raises(ValueError):
        ScanScheduler(GatedScanner(), max_concurrent=0)
