from __future__ import annotations
import asyncio
import logging
import time
from typing import Awaitable, Callable, List

from citeqa.core.errors import IndexWaitTimeout
from citeqa.core.ports.completion import BUILDING, COMPLETED, FAILED, INDEXING, ICompletionService

logger = logging.getLogger("citeqa.index")

TIMED_OUT = "timed_out"
TERMINAL_STATES = frozenset({COMPLETED, FAILED, TIMED_OUT})

# building -> indexing -> completed | failed, plus timed_out from either live state
_TRANSITIONS = {
    BUILDING: frozenset({BUILDING, INDEXING, COMPLETED, FAILED, TIMED_OUT}),
    INDEXING: frozenset({INDEXING, COMPLETED, FAILED, TIMED_OUT}),
}

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class IndexReadinessWaiter:
    """
    Polls an index until it reaches a terminal state.

    The clock and sleep functions are injectable so tests can simulate
    instantaneous or stalled indexing without real delays.
    """

    def __init__(
        self,
        service: ICompletionService,
        poll_interval: float = 1.0,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.service = service
        self.poll_interval = poll_interval
        self.clock = clock
        self.sleep = sleep

    async def _poll_until_terminal(self, index_id: str, timeout: float) -> str:
        deadline = self.clock() + timeout
        state = BUILDING
        while True:
            reported = await self.service.index_status(index_id)
            if reported not in _TRANSITIONS[state]:
                # a service may briefly report an earlier state; never move backwards
                logger.debug(f"Ignoring {state} -> {reported} for index {index_id}")
                reported = state
            state = reported
            if state in TERMINAL_STATES:
                return state
            if self.clock() >= deadline:
                raise IndexWaitTimeout(f"index {index_id} still {state} after {timeout:.0f}s")
            await self.sleep(self.poll_interval)

    async def wait(self, index_id: str, timeout: float) -> str:
        """Return completed, failed or timed_out. Never raises on timeout."""
        try:
            state = await self._poll_until_terminal(index_id, timeout)
        except IndexWaitTimeout as e:
            logger.warning(f"⏳ {e}; proceeding with best-effort index")
            return TIMED_OUT
        if state == FAILED:
            logger.error(f"❌ Index {index_id} failed to build")
        return state

    async def wait_all(self, index_ids: List[str], timeout: float) -> List[str]:
        return list(await asyncio.gather(*(self.wait(i, timeout) for i in index_ids)))
