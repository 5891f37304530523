import asyncio
from datetime import date

from conftest import DEPARTURE, FRA_BCN, RETURN, FakePricingService, make_coordinator, wait_until
from pricematrix.DateWindow import compute_window
from pricematrix.PrefetchScheduler import PREFETCH_STEPS, PrefetchScheduler
from pricematrix.PriceMatrix import PriceMatrix
from pricematrix.RequestCoordinator import SessionResult
from pricematrix.data import DatePair


class RecordingCoordinator:
    def __init__(self, on_call=None):
        self.calls = []
        self.on_call = on_call

    async def run_session(self, route, outbound, inbound, session):
        self.calls.append((route, outbound[3], inbound[3], session))
        if self.on_call is not None:
            self.on_call(len(self.calls))
        return SessionResult(status="skipped")


class StubContext:
    route = FRA_BCN

    def __init__(self, offsets=(0, 0)):
        self.offsets = offsets

    def windows(self, outbound_offset, inbound_offset):
        return compute_window(DEPARTURE, outbound_offset), compute_window(RETURN, inbound_offset)


def _window_centres(requests):
    return [(body["outboundDates"][3], body["inboundDates"][3]) for body in requests]


def test_prefetch_order_is_right_left_down_up():
    assert PREFETCH_STEPS == ((1, 0), (-1, 0), (0, 1), (0, -1))

    coordinator = RecordingCoordinator()
    scheduler = PrefetchScheduler(coordinator, settle_delay=0)

    async def scenario():
        scheduler.start(StubContext())
        await scheduler.wait()

    asyncio.run(scenario())

    assert [(c[1].isoformat(), c[2].isoformat()) for c in coordinator.calls] == [
        ("2025-06-11", "2025-06-17"),
        ("2025-06-09", "2025-06-17"),
        ("2025-06-10", "2025-06-18"),
        ("2025-06-10", "2025-06-16"),
    ]
    sessions = [c[3] for c in coordinator.calls]
    assert all(s.is_prefetch for s in sessions)
    # one cancellation handle for the whole sequence
    assert len({id(s.token) for s in sessions}) == 1


def test_prefetch_reads_offsets_when_each_step_runs():
    context = StubContext()

    def move(calls):
        if calls == 1:
            context.offsets = (5, 5)

    coordinator = RecordingCoordinator(on_call=move)
    scheduler = PrefetchScheduler(coordinator, settle_delay=0)

    async def scenario():
        scheduler.start(context)
        await scheduler.wait()

    asyncio.run(scenario())

    centres = [(c[1].isoformat(), c[2].isoformat()) for c in coordinator.calls]
    assert centres[0] == ("2025-06-11", "2025-06-17")
    assert centres[1:] == [
        ("2025-06-14", "2025-06-22"),
        ("2025-06-15", "2025-06-23"),
        ("2025-06-15", "2025-06-21"),
    ]


def test_cancel_during_settle_delay_abandons_sequence():
    coordinator = RecordingCoordinator()
    scheduler = PrefetchScheduler(coordinator, settle_delay=10)

    async def scenario():
        scheduler.start(StubContext())
        await asyncio.sleep(0)
        assert scheduler.running
        scheduler.cancel()
        await scheduler.wait()
        return scheduler.running

    assert asyncio.run(scenario()) is False
    assert coordinator.calls == []


def test_cancel_mid_sequence_skips_remaining_steps():
    scheduler = None

    def stop(calls):
        if calls == 2:
            scheduler.cancel()

    coordinator = RecordingCoordinator(on_call=stop)
    scheduler = PrefetchScheduler(coordinator, settle_delay=0)

    async def scenario():
        scheduler.start(StubContext())
        await scheduler.wait()

    asyncio.run(scenario())

    assert len(coordinator.calls) == 2


def test_matrix_prefetches_four_neighbours_after_primary(service):
    matrix = PriceMatrix(make_coordinator(service.handler), settle_delay=0)

    async def scenario():
        matrix.open("FRA", "BCN", DEPARTURE, RETURN)
        await matrix.wait_idle()

    asyncio.run(scenario())

    assert _window_centres(service.requests) == [
        ("2025-06-10", "2025-06-17"),
        ("2025-06-11", "2025-06-17"),
        ("2025-06-09", "2025-06-17"),
        ("2025-06-10", "2025-06-18"),
        ("2025-06-10", "2025-06-16"),
    ]


def test_prefetch_skips_fully_cached_windows(service):
    matrix = PriceMatrix(make_coordinator(service.handler), settle_delay=0)

    async def scenario():
        matrix.open("FRA", "BCN", DEPARTURE, RETURN)
        await matrix.wait_idle()
        matrix.shift(outbound=1)
        await matrix.wait_idle()

    asyncio.run(scenario())

    # the shifted primary window was prefetched already; of its neighbours only
    # (+2, 0) and (+1, +1) still have uncached pairs
    assert _window_centres(service.requests[5:]) == [
        ("2025-06-12", "2025-06-17"),
        ("2025-06-11", "2025-06-18"),
    ]


def test_prefetch_waits_for_pending_to_empty(cache):
    service = FakePricingService()
    gate = None

    async def handler(request):
        response = service.handler(request)
        if len(service.requests) == 1:
            await gate.wait()
        return response

    matrix = PriceMatrix(make_coordinator(handler, cache), settle_delay=0)

    async def scenario():
        nonlocal gate
        gate = asyncio.Event()
        matrix.open("FRA", "BCN", DEPARTURE, RETURN)
        await wait_until(lambda: len(service.requests) == 1)
        await asyncio.sleep(0.01)
        running_before = matrix.prefetcher.running
        gate.set()
        await matrix.wait_idle()
        return running_before

    assert asyncio.run(scenario()) is False
    assert len(service.requests) == 5


def test_new_primary_cancels_prefetch(cache):
    service = FakePricingService()
    blocked = None

    async def handler(request):
        response = service.handler(request)
        if len(service.requests) == 2:
            # first prefetch step hangs until cancelled
            await blocked.wait()
        return response

    matrix = PriceMatrix(make_coordinator(handler, cache), settle_delay=0)

    async def scenario():
        nonlocal blocked
        blocked = asyncio.Event()
        matrix.open("FRA", "BCN", DEPARTURE, RETURN)
        await wait_until(lambda: len(service.requests) == 2)
        first_prefetch = matrix.prefetcher._token
        matrix.shift(inbound=3)
        await matrix.wait_idle()
        return first_prefetch

    first_prefetch = asyncio.run(scenario())

    assert first_prefetch.cancelled
    # only the hung (+1, 0) window covers this pair, so it stays uncached
    assert not cache.has(FRA_BCN, DatePair(date(2025, 6, 14), date(2025, 6, 15)))
    assert matrix.offsets == (0, 3)
