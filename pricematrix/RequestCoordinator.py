import logging
from contextlib import aclosing
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Set

from pricematrix.DateWindow import iter_valid_pairs
from pricematrix.PriceCache import ABSENT, PriceCache
from pricematrix.PriceStream import PriceStreamClient
from pricematrix.Session import Session
from pricematrix.data import DatePair, Route
from pricematrix.data.PriceMatrixEvent import CompleteEvent, PriceEvent, ProgressEvent
from pricematrix.data.PriceMatrixQuery import PriceMatrixQuery
from pricematrix.errors import PriceStreamError

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    status: str = "pending"  # skipped | complete | ended | cancelled | failed
    requested: int = 0
    received: int = 0
    absent: int = 0
    ignored: int = 0
    error: Optional[PriceStreamError] = None


class RequestCoordinator:
    def __init__(
        self,
        cache: PriceCache,
        stream_client: PriceStreamClient,
        adults: int = 1,
        children: int = 0,
        infants: int = 0,
        currency: str = "EUR",
    ):
        self.cache = cache
        self.stream_client = stream_client
        self.adults = adults
        self.children = children
        self.infants = infants
        self.currency = currency

    def build_query(self, route: Route, outbound_dates: List[date], inbound_dates: List[date]) -> PriceMatrixQuery:
        return PriceMatrixQuery(
            origin=route.origin,
            destination=route.destination,
            outbound_dates=outbound_dates,
            inbound_dates=inbound_dates,
            adults=self.adults,
            children=self.children,
            infants=self.infants,
            currency=self.currency,
        )

    def needed_pairs(self, route: Route, outbound_dates: List[date], inbound_dates: List[date]) -> List[DatePair]:
        return self.cache.missing(route, iter_valid_pairs(outbound_dates, inbound_dates))

    async def run_session(
        self,
        route: Route,
        outbound_dates: List[date],
        inbound_dates: List[date],
        session: Session,
    ) -> SessionResult:
        """Fetch every valid, uncached pair of the two windows with one streaming request.

        PriceStreamError propagates for primary sessions and is logged and
        swallowed for prefetch sessions. Cancellation is never an error.
        """
        needed = self.needed_pairs(route, outbound_dates, inbound_dates)
        result = SessionResult(requested=len(needed))

        if session.cancelled:
            result.status = "cancelled"
            return result

        if not needed:
            logger.info(
                "%s session #%d for %s: all pairs cached, nothing to fetch",
                session.kind, session.generation, route,
            )
            result.status = "skipped"
            session.settle()
            return result

        needed_set: Set[DatePair] = set(needed)
        if not session.is_prefetch:
            session.pending.update(needed_set)

        logger.info(
            "%s session #%d for %s: fetching %d pairs (%s..%s x %s..%s)",
            session.kind, session.generation, route, len(needed),
            outbound_dates[0], outbound_dates[-1], inbound_dates[0], inbound_dates[-1],
        )

        query = self.build_query(route, outbound_dates, inbound_dates)
        try:
            async with aclosing(self.stream_client.stream(query, session.token)) as events:
                async for event in events:
                    if session.cancelled:
                        break
                    if isinstance(event, PriceEvent):
                        self._apply_price(route, event, needed_set, session, result)
                    elif isinstance(event, ProgressEvent):
                        logger.debug("%s session #%d progress %d/%d", session.kind, session.generation, event.current, event.total)
                    elif isinstance(event, CompleteEvent):
                        result.status = "complete"
                        break
        except PriceStreamError as e:
            result.status = "failed"
            result.error = e
            if not session.is_prefetch and not session.cancelled:
                logger.error("%s session #%d for %s failed: %s", session.kind, session.generation, route, e)
                raise
            logger.warning("%s session #%d for %s failed, ignoring: %s", session.kind, session.generation, route, e)
            return result
        finally:
            # unanswered pairs stay uncached and are retried by a later session
            session.pending.clear()

        if session.cancelled:
            result.status = "cancelled"
            return result

        if result.status != "complete":
            result.status = "ended"
        logger.info(
            "%s session #%d for %s %s: %d received, %d without offer",
            session.kind, session.generation, route, result.status, result.received, result.absent,
        )
        session.settle()
        return result

    def _apply_price(self, route: Route, event: PriceEvent, needed: Set[DatePair], session: Session, result: SessionResult):
        pair = event.pair
        if pair not in needed:
            # already cached, or never asked for
            result.ignored += 1
            return

        if event.price is not None and event.price > 0:
            self.cache.merge(route, pair, event.price)
        else:
            self.cache.merge(route, pair, ABSENT)
            result.absent += 1
        result.received += 1

        if not session.is_prefetch:
            session.pending.discard(pair)
            if not session.pending:
                session.settle()
