import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Set

from pricematrix.data import DatePair

logger = logging.getLogger(__name__)

_generations = itertools.count(1)


class CancelToken:
    """Cancellation handle; every prefetch step of one sequence shares the same token.

    `cancel()` wakes anything blocked in `wait()`, so a stream that has gone
    quiet is abandoned right away instead of at the next chunk.
    """

    def __init__(self, label: str = "session"):
        self.label = label
        self.generation = next(_generations)
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        if not self._event.is_set():
            self._event.set()
            logger.debug("Cancelled %r", self)

    async def wait(self):
        await self._event.wait()

    def __repr__(self) -> str:
        return f"<CancelToken {self.label}#{self.generation}{' cancelled' if self.cancelled else ''}>"


@dataclass
class Session:
    token: CancelToken
    is_prefetch: bool = False
    pending: Set[DatePair] = field(default_factory=set)
    on_settled: Optional[Callable[["Session"], None]] = None
    _settled: bool = field(default=False, init=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    @property
    def generation(self) -> int:
        return self.token.generation

    @property
    def kind(self) -> str:
        return "prefetch" if self.is_prefetch else "primary"

    def settle(self):
        """Pending set is empty: fire on_settled once, unless cancelled."""
        if self._settled or self.cancelled or self.pending:
            return
        self._settled = True
        if self.on_settled is not None:
            self.on_settled(self)
