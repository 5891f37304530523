from datetime import date, timedelta
from typing import Iterable, Iterator, List, Optional

from pricematrix.data import DatePair

WINDOW_SPAN = 3  # days either side of the base date
DEFAULT_TRIP_DAYS = 7  # inbound base when no return date is given


def compute_window(base_date: date, offset: int = 0) -> List[date]:
    return [base_date + timedelta(days=i + offset) for i in range(-WINDOW_SPAN, WINDOW_SPAN + 1)]


def inbound_base(departure_date: date, return_date: Optional[date] = None) -> date:
    if return_date is not None:
        return return_date
    return departure_date + timedelta(days=DEFAULT_TRIP_DAYS)


def window_strings(window: Iterable[date]) -> List[str]:
    return [d.isoformat() for d in window]


def iter_valid_pairs(outbound_dates: Iterable[date], inbound_dates: Iterable[date]) -> Iterator[DatePair]:
    # yields (outbound, inbound), outbound-major, inbound strictly after outbound
    inbound_dates = list(inbound_dates)
    for out in outbound_dates:
        for inb in inbound_dates:
            pair = DatePair(out, inb)
            if pair.is_valid:
                yield pair
