# indexer/loop.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from common.rpc import RpcTransportError
from indexer.base import NetworkClient, TransientError
from indexer.checkpoint import Checkpoint
from indexer.sink import PushSink

logger = logging.getLogger(__name__)

ITERATION_INTERVAL = 0.1  # seconds

# failures that leave the cursor untouched and are retried on the next wake
TRANSIENT_ERRORS = (TransientError, RpcTransportError)


@dataclass(frozen=True)
class RetryPolicy:
    initial_delay: float = 1.0
    factor: float = 2.0
    max_delay: float = 60.0

    def delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self.max_delay, self.initial_delay * (self.factor ** (failures - 1)))


class Indexer:
    """
    Drives one client against one checkpoint.

    Each step loads the cursor, fetches a page, processes the jobs in order,
    pushes their payloads in order and only then commits the page's cursor.
    A failed step commits nothing, so the same page is fetched again.
    """

    def __init__(
        self,
        client: NetworkClient,
        checkpoint: Checkpoint,
        sink: PushSink,
        *,
        interval: float = ITERATION_INTERVAL,
        retry: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.client = client
        self.checkpoint = checkpoint
        self.sink = sink
        self.interval = interval
        self.retry = retry
        self._sleep = sleep
        self._stopped = False

    def stop(self) -> None:
        """Ask the loop to exit before its next wake."""
        self._stopped = True

    @property
    def stopped(self) -> bool:
        return self._stopped

    async def step(self) -> int:
        """Run one iteration and return the number of payloads pushed."""
        cursor = self.checkpoint.get()
        # blocking rpc runs off the event loop, one call at a time
        jobs, next_cursor = await asyncio.to_thread(self.client.fetch_jobs, cursor)

        pushed = 0
        for job in jobs:
            payloads = await asyncio.to_thread(self.client.handle_process, job)
            for payload in payloads or []:
                await self.sink.push(payload)
                pushed += 1

        self.checkpoint.update(next_cursor)
        if jobs:
            logger.info("%s jobs %d payloads %d cursor %r", self.client.network.value, len(jobs), pushed, next_cursor)
        return pushed

    async def run(self, max_iterations: Optional[int] = None) -> None:
        failures = 0
        iterations = 0
        while not self._stopped:
            try:
                await self.step()
                failures = 0
                delay = self.interval
            except TRANSIENT_ERRORS as e:
                failures += 1
                delay = self.retry.delay(failures)
                logger.warning(
                    "%s iteration failed (%d in a row), retrying in %.2fs: %s",
                    self.client.network.value, failures, delay, e,
                )
            iterations += 1
            if max_iterations is not None and iterations >= max_iterations:
                break
            await self._sleep(delay)
