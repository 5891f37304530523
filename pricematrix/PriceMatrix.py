import asyncio
import logging
from contextlib import suppress
from datetime import date
from typing import FrozenSet, List, Optional, Tuple

from pricematrix.DateWindow import compute_window, inbound_base
from pricematrix.MatrixProjection import build_snapshot
from pricematrix.PrefetchScheduler import PrefetchScheduler
from pricematrix.PriceCache import PriceCache
from pricematrix.RequestCoordinator import RequestCoordinator
from pricematrix.Session import CancelToken, Session
from pricematrix.data import DatePair, Route
from pricematrix.data.MatrixSnapshot import MatrixSnapshot
from pricematrix.errors import PriceMatrixError, PriceStreamError

logger = logging.getLogger(__name__)


class PriceMatrix:
    """Search context for one displayed matrix.

    Owns the primary session for the current windows and the prefetch
    sequence for the neighbouring ones. Prices live in the shared
    PriceCache, so a new PriceMatrix for a known route starts warm.
    """

    def __init__(self, coordinator: RequestCoordinator, settle_delay: float = 1.0):
        self.coordinator = coordinator
        self.prefetcher = PrefetchScheduler(coordinator, settle_delay)
        self.route: Optional[Route] = None
        self.departure_date: Optional[date] = None
        self.return_date: Optional[date] = None
        self.error: Optional[PriceStreamError] = None
        self._outbound_offset = 0
        self._inbound_offset = 0
        self._session: Optional[Session] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def cache(self) -> PriceCache:
        return self.coordinator.cache

    @property
    def offsets(self) -> Tuple[int, int]:
        return self._outbound_offset, self._inbound_offset

    @property
    def pending(self) -> FrozenSet[DatePair]:
        if self._session is None:
            return frozenset()
        return frozenset(self._session.pending)

    @property
    def loading(self) -> bool:
        return self._task is not None and not self._task.done()

    def windows(self, outbound_offset: Optional[int] = None, inbound_offset: Optional[int] = None) -> Tuple[List[date], List[date]]:
        if self.departure_date is None:
            raise PriceMatrixError("No search is open")
        if outbound_offset is None:
            outbound_offset = self._outbound_offset
        if inbound_offset is None:
            inbound_offset = self._inbound_offset
        return (
            compute_window(self.departure_date, outbound_offset),
            compute_window(inbound_base(self.departure_date, self.return_date), inbound_offset),
        )

    @property
    def selected_pair(self) -> Optional[DatePair]:
        # one-way searches have no selected cell
        if self.departure_date is None or self.return_date is None:
            return None
        return DatePair(self.departure_date, self.return_date)

    @property
    def outbound_dates(self) -> List[date]:
        return self.windows()[0]

    @property
    def inbound_dates(self) -> List[date]:
        return self.windows()[1]

    def open(self, origin: str, destination: str, departure_date: date, return_date: Optional[date] = None):
        route = Route.of(origin, destination)
        if (route, departure_date, return_date) != (self.route, self.departure_date, self.return_date):
            self._outbound_offset = 0
            self._inbound_offset = 0
        self.route = route
        self.departure_date = departure_date
        self.return_date = return_date
        self._start_primary()

    def shift(self, outbound: int = 0, inbound: int = 0):
        if self.route is None:
            raise PriceMatrixError("No search is open")
        self._outbound_offset += outbound
        self._inbound_offset += inbound
        self._start_primary()

    async def close(self):
        """Cancel everything running; the cache is left as is."""
        tasks = self._cancel_sessions()
        # reset before awaiting so an open() racing this close keeps its state
        self.route = None
        self.departure_date = None
        self.return_date = None
        self._session = None
        self._task = None
        for task in tasks:
            with suppress(asyncio.CancelledError):
                await task

    async def wait_primary(self):
        task = self._task
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    async def wait_idle(self):
        await self.wait_primary()
        await self.prefetcher.wait()

    def snapshot(self) -> MatrixSnapshot:
        if self.route is None:
            raise PriceMatrixError("No search is open")
        outbound, inbound = self.windows()
        return build_snapshot(
            self.route,
            outbound,
            inbound,
            self.cache.get(self.route),
            pending=self.pending,
            offsets=self.offsets,
            loading=self.loading,
            error=self.error,
            selected=self.selected_pair,
        )

    def _cancel_sessions(self) -> List[asyncio.Task]:
        """Cancel the primary session and any prefetch; returns the tasks still winding down."""
        tasks = []
        prefetch = self.prefetcher.cancel()
        if prefetch is not None:
            tasks.append(prefetch)
        if self._session is not None:
            self._session.token.cancel()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            tasks.append(task)
        return tasks

    def _start_primary(self):
        self._cancel_sessions()
        self.error = None

        session = Session(token=CancelToken("primary"), on_settled=self._on_settled)
        self._session = session
        outbound, inbound = self.windows()
        self._task = asyncio.create_task(
            self._run_primary(self.route, outbound, inbound, session),
            name=f"primary-{session.generation}",
        )

    async def _run_primary(self, route: Route, outbound: List[date], inbound: List[date], session: Session):
        try:
            await self.coordinator.run_session(route, outbound, inbound, session)
        except PriceStreamError as e:
            if session is self._session:
                self.error = e

    def _on_settled(self, session: Session):
        if session is not self._session or self.route is None:
            return
        logger.debug("Primary session #%d settled, scheduling prefetch", session.generation)
        self.prefetcher.start(self)
