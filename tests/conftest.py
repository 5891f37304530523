import asyncio
import json
from datetime import date

import httpx
import pytest

from pricematrix.PriceCache import PriceCache
from pricematrix.PriceStream import PriceStreamClient
from pricematrix.RequestCoordinator import RequestCoordinator
from pricematrix.data import Route

STREAM_URL = "http://pricing.test/price-matrix-stream"

FRA_BCN = Route("FRA", "BCN")
DEPARTURE = date(2025, 6, 10)
RETURN = date(2025, 6, 17)


def sse(*events, heartbeat=False) -> bytes:
    lines = [": price matrix stream"]
    for event in events:
        if heartbeat:
            lines.append("data: keep-alive")
        lines.append("data: " + json.dumps(event))
        lines.append("")
    return ("\n".join(lines) + "\n").encode("utf-8")


def price_event(out, inb, price=None, camel=False):
    out_key, in_key = ("outboundDate", "inboundDate") if camel else ("outbound_date", "inbound_date")
    event = {"type": "price", out_key: str(out), in_key: str(inb), "currency": "EUR"}
    if price is not None:
        event["price"] = price
    return event


async def wait_until(predicate, timeout=2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


class FakePricingService:
    """Answers every valid pair of the requested windows, then sends complete."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []
        self.no_offer = set()  # "out_in" keys answered without a price
        self.prices = {}  # "out_in" -> price string

    def price_for(self, out: str, inb: str):
        key = f"{out}_{inb}"
        if key in self.no_offer:
            return None
        if key in self.prices:
            return self.prices[key]
        days = (date.fromisoformat(inb) - date.fromisoformat(out)).days
        return f"{100 + days:.2f}"

    def events_for(self, body):
        events = []
        for out in body["outboundDates"]:
            for inb in body["inboundDates"]:
                if inb > out:
                    events.append(price_event(out, inb, self.price_for(out, inb)))
        events.append({"type": "progress", "current": len(events), "total": len(events)})
        events.append({"type": "complete", "total": len(events) - 1, "successful": len(events) - 1, "failed": 0})
        return events

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="pricing backend unavailable")
        return httpx.Response(
            200,
            content=sse(*self.events_for(body), heartbeat=True),
            headers={"content-type": "text/event-stream"},
        )


def make_coordinator(handler, cache=None) -> RequestCoordinator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RequestCoordinator(cache if cache is not None else PriceCache(), PriceStreamClient(client, STREAM_URL))


@pytest.fixture
def service():
    return FakePricingService()


@pytest.fixture
def cache():
    return PriceCache()
