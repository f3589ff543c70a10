"""
SearchExecutor — runs one SearchSpecification against a SearchBackend.

Submit, then poll at a fixed interval until the backend reports
completion or the timeout ceiling is reached.  A timeout is not an
error: whatever the last payload held is returned with timed_out=True.
Backend calls are blocking and run in a worker thread.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from src.adapters.normalize import extract_total
from src.adapters.ports import SearchBackend, SearchBackendError
from src.domain.search import SearchOutcome, SearchSpecification

log = logging.getLogger(__name__)


class SearchExecutor:

    def __init__(
        self,
        backend: SearchBackend,
        poll_interval: float = 1.5,
        timeout: float = 20.0,
        retry_delay: float = 0.6,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._backend = backend
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._retry_delay = retry_delay
        self._sleep = sleep
        self._clock = clock

    async def execute(self, spec: SearchSpecification) -> SearchOutcome:
        """Submit and poll once. Raises SearchBackendError on transport failure."""
        request_id = await asyncio.to_thread(self._backend.submit, spec)
        started = self._clock()
        polls = 0
        timed_out = False

        while True:
            polls += 1
            result = await asyncio.to_thread(self._backend.poll, request_id)
            payload = result.payload
            if result.done:
                break
            if self._clock() - started + self._poll_interval >= self._timeout:
                timed_out = True
                log.warning("Search req=%s timed out after %d polls", request_id, polls)
                break
            await self._sleep(self._poll_interval)

        results = self._backend.normalize(payload)
        results.sort(key=lambda t: t.price, reverse=spec.sort == "price_desc")
        log.info(
            "Search req=%s done: %d results, %d polls%s",
            request_id, len(results), polls, " (timed out)" if timed_out else "",
        )
        return SearchOutcome(
            request_id=request_id,
            results=results,
            timed_out=timed_out,
            polls=polls,
            total=extract_total(payload),
        )

    async def execute_with_retry(self, spec: SearchSpecification) -> SearchOutcome:
        """execute(), retried exactly once on a backend failure."""
        try:
            return await self.execute(spec)
        except SearchBackendError as exc:
            log.warning("Search failed (%s), retrying once", exc)
        await self._sleep(self._retry_delay)
        return await self.execute(spec)
