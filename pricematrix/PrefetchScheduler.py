import asyncio
import logging
from contextlib import suppress
from datetime import date
from typing import List, Optional, Protocol, Tuple

from pricematrix.RequestCoordinator import RequestCoordinator, SessionResult
from pricematrix.Session import CancelToken, Session
from pricematrix.data import Route

logger = logging.getLogger(__name__)

# (outbound, inbound) offset deltas: right, left, down, up
PREFETCH_STEPS: Tuple[Tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))


class SearchContext(Protocol):
    route: Optional[Route]
    offsets: Tuple[int, int]

    def windows(self, outbound_offset: int, inbound_offset: int) -> Tuple[List[date], List[date]]:
        ...


class PrefetchScheduler:
    """Loads the four neighbouring windows in the background, one stream at a time."""

    def __init__(self, coordinator: RequestCoordinator, settle_delay: float = 1.0):
        self.coordinator = coordinator
        self.settle_delay = settle_delay
        self._token: Optional[CancelToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, context: SearchContext):
        self.cancel()
        token = CancelToken("prefetch")
        self._token = token
        self._task = asyncio.create_task(self._run(context, token), name=f"prefetch-{token.generation}")

    def cancel(self) -> Optional[asyncio.Task]:
        """Cancel the running sequence; returns its task if it was still running."""
        if self._token is not None:
            self._token.cancel()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            return task
        return None

    async def wait(self):
        task = self._task
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    async def _run(self, context: SearchContext, token: CancelToken) -> List[SessionResult]:
        await asyncio.sleep(self.settle_delay)

        results = []
        for d_out, d_in in PREFETCH_STEPS:
            if token.cancelled or context.route is None:
                break
            # offsets are read now, not when the sequence was scheduled
            out_offset, in_offset = context.offsets
            outbound, inbound = context.windows(out_offset + d_out, in_offset + d_in)
            session = Session(token=token, is_prefetch=True)
            result = await self.coordinator.run_session(context.route, outbound, inbound, session)
            logger.debug("Prefetch [%d, %d] for %s: %s", out_offset + d_out, in_offset + d_in, context.route, result.status)
            results.append(result)
        return results
