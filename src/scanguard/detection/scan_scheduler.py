"""
Bounded-concurrency admission of scan requests.

Requests wait in a FIFO queue and are admitted while fewer than
``max_concurrent`` scans are in flight. Each completion, successful or not,
frees a slot and admits the next queued request. A failing scan only rejects
its own caller.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque, Protocol, Set, Tuple

from scanguard.datatypes.detection_datatypes import DetectionResult
from scanguard.datatypes.image_datatypes import ScanRequest
from scanguard.detection.errors import SchedulerShutdown
from scanguard.util.logger import get_logger

logger = get_logger("scan_scheduler")


class Scanner(Protocol):
    async def scan(self, request: ScanRequest) -> DetectionResult: ...


class ScanScheduler:
    def __init__(self, scanner: Scanner, max_concurrent: int = 2) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.scanner = scanner
        self.max_concurrent = max_concurrent
        self._pending: Deque[Tuple[ScanRequest, asyncio.Future]] = deque()
        self._in_flight = 0
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def in_flight_count(self) -> int:
        return self._in_flight

    async def submit(self, request: ScanRequest) -> DetectionResult:
        """Queue a request and wait for its result. Exceptions from the scan propagate."""
        if self._closed:
            raise SchedulerShutdown("Scan scheduler is shut down")

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending.append((request, future))
        self._admit()
        return await future

    def _admit(self) -> None:
        while self._in_flight < self.max_concurrent and self._pending:
            request, future = self._pending.popleft()
            if future.done():
                # Caller gave up while queued
                continue
            self._in_flight += 1
            task = asyncio.create_task(self._run(request, future))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, request: ScanRequest, future: asyncio.Future) -> None:
        try:
            result = await self.scanner.scan(request)
        except asyncio.CancelledError:
            if not future.done():
                future.cancel()
            raise
        except Exception as exc:
            logger.debug("[SCAN SCHEDULER] Scan failed: %s", exc)
            if not future.done():
                future.set_exception(exc)
        else:
            if not future.done():
                future.set_result(result)
        finally:
            self._in_flight -= 1
            if not self._closed:
                self._admit()

    async def shutdown(self) -> None:
        """Reject queued requests and wait for in-flight scans to finish."""
        self._closed = True
        rejected = 0
        while self._pending:
            _, future = self._pending.popleft()
            if not future.done():
                future.set_exception(SchedulerShutdown("Scan scheduler shut down before admission"))
                rejected += 1

        if rejected:
            logger.info("[SCAN SCHEDULER] Rejected %d queued scans on shutdown", rejected)
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("[SCAN SCHEDULER] Shut down")
