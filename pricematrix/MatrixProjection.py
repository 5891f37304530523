from datetime import date
from typing import AbstractSet, Dict, List, Optional, Tuple

from pricematrix.PriceCache import ABSENT, PriceValue
from pricematrix.data import DatePair, Route
from pricematrix.data.MatrixSnapshot import MatrixCell, MatrixRow, MatrixSnapshot

UNAVAILABLE_MESSAGE = "prices unavailable"


def price_band(price: float, min_price: float, max_price: float) -> str:
    if max_price <= min_price:
        return "low"
    ratio = (price - min_price) / (max_price - min_price)
    if ratio < 1 / 3:
        return "low"
    if ratio < 2 / 3:
        return "mid"
    return "high"


def _cell(
    pair: DatePair,
    prices: Dict[DatePair, PriceValue],
    pending: AbstractSet[DatePair],
    selected: Optional[DatePair],
) -> MatrixCell:
    if not pair.is_valid:
        status = "invalid"
    elif pair in prices:
        status = "absent" if prices[pair] is ABSENT else "price"
    elif pair in pending:
        status = "pending"
    else:
        status = "unknown"

    return MatrixCell(
        outbound_date=pair.outbound,
        inbound_date=pair.inbound,
        status=status,
        price=prices[pair] if status == "price" else None,
        selected=pair == selected,
    )


def build_snapshot(
    route: Route,
    outbound_dates: List[date],
    inbound_dates: List[date],
    prices: Dict[DatePair, PriceValue],
    pending: AbstractSet[DatePair] = frozenset(),
    offsets: Tuple[int, int] = (0, 0),
    loading: bool = False,
    error: Optional[Exception] = None,
    selected: Optional[DatePair] = None,
) -> MatrixSnapshot:
    """Project the cache onto the current windows; `selected` is the searched pair, if any."""
    rows = [
        MatrixRow(
            outbound_date=out,
            cells=[_cell(DatePair(out, inb), prices, pending, selected) for inb in inbound_dates],
        )
        for out in outbound_dates
    ]

    priced = [cell for row in rows for cell in row.cells if cell.status == "price"]
    min_price = min((c.price for c in priced), default=None)
    max_price = max((c.price for c in priced), default=None)
    for cell in priced:
        cell.band = price_band(cell.price, min_price, max_price)

    return MatrixSnapshot(
        origin=route.origin,
        destination=route.destination,
        outbound_offset=offsets[0],
        inbound_offset=offsets[1],
        outbound_dates=outbound_dates,
        inbound_dates=inbound_dates,
        rows=rows,
        min_price=min_price,
        max_price=max_price,
        cheapest=sorted(priced, key=lambda c: (c.price, c.outbound_date, c.inbound_date))[:5],
        loading=loading,
        error=UNAVAILABLE_MESSAGE if error is not None else None,
    )
