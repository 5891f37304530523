import math
from enum import Enum
from typing import Dict, Iterable, List, Union

from pricematrix.data import DatePair, Route


class Absent(Enum):
    """Checked, and no offer exists for the date pair."""

    ABSENT = "absent"

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent.ABSENT

PriceValue = Union[float, Absent]


class PriceCache:
    """Route -> {DatePair: price or ABSENT}. Lives for the whole process, never evicted."""

    def __init__(self):
        self._cache: Dict[Route, Dict[DatePair, PriceValue]] = {}

    def get(self, route: Route) -> Dict[DatePair, PriceValue]:
        # copy, so callers can never replace or mutate the shared map
        return dict(self._cache.get(route, {}))

    def has(self, route: Route, pair: DatePair) -> bool:
        entries = self._cache.get(route)
        return entries is not None and pair in entries

    def merge(self, route: Route, pair: DatePair, value: PriceValue):
        if not pair.is_valid:
            raise ValueError(f"Inbound date must be after outbound date: {pair}")
        if value is not ABSENT:
            value = float(value)
            if not math.isfinite(value) or value <= 0:
                raise ValueError(f"Price must be a positive number, got {value!r}")

        # single dict write, no await in between
        self._cache.setdefault(route, {})[pair] = value

    def missing(self, route: Route, pairs: Iterable[DatePair]) -> List[DatePair]:
        entries = self._cache.get(route, {})
        return [p for p in pairs if p not in entries]

    def routes(self) -> List[Route]:
        return list(self._cache)

    def clear(self):
        self._cache.clear()

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._cache.values())
