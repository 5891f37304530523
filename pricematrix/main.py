from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
import httpx
import uvicorn

from pricematrix import __version__
from pricematrix.config import Settings
from pricematrix.PriceCache import PriceCache
from pricematrix.PriceMatrix import PriceMatrix
from pricematrix.PriceStream import PriceStreamClient
from pricematrix.RequestCoordinator import RequestCoordinator
from pricematrix.data.MatrixSnapshot import MatrixSearch, MatrixShift, MatrixSnapshot

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- Startup Logic ---
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.read_timeout, connect=settings.connect_timeout),
            transport=transport,
        )
        # one cache for the whole process, shared by every session
        cache = PriceCache()
        coordinator = RequestCoordinator(
            cache,
            PriceStreamClient(client, settings.stream_url),
            adults=settings.adults,
            children=settings.children,
            infants=settings.infants,
            currency=settings.currency,
        )
        app.state.cache = cache
        app.state.matrix = PriceMatrix(coordinator, settle_delay=settings.settle_delay)
        logger.info("Price matrix service started, streaming from %s", settings.stream_url)

        yield  # The app runs while this is yielded

        # --- Shutdown Logic ---
        await app.state.matrix.close()
        await client.aclose()
        logger.info("Price matrix service stopped.")

    app = FastAPI(title="Price Matrix Service", version=__version__, lifespan=lifespan)

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _matrix(request: Request) -> PriceMatrix:
        return request.app.state.matrix

    @app.get("/status")
    async def get_status():
        """Validates the backend is running."""
        return {
            "status": "online",
            "service": "price-matrix",
            "version": __version__,
        }

    @app.put("/matrix", response_model=MatrixSnapshot)
    async def open_matrix(search: MatrixSearch, request: Request):
        if search.return_date is not None and search.return_date <= search.departure_date:
            raise HTTPException(status_code=422, detail="returnDate must be after departureDate")
        matrix = _matrix(request)
        try:
            matrix.open(search.origin, search.destination, search.departure_date, search.return_date)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return matrix.snapshot()

    @app.post("/matrix/shift", response_model=MatrixSnapshot)
    async def shift_matrix(shift: MatrixShift, request: Request):
        matrix = _matrix(request)
        if matrix.route is None:
            raise HTTPException(status_code=404, detail="No price matrix is open")
        matrix.shift(shift.outbound, shift.inbound)
        return matrix.snapshot()

    @app.get("/matrix", response_model=MatrixSnapshot)
    async def get_matrix(request: Request, wait: bool = False):
        matrix = _matrix(request)
        if matrix.route is None:
            raise HTTPException(status_code=404, detail="No price matrix is open")
        if wait:
            # long-poll until the primary window is settled
            await matrix.wait_primary()
        return matrix.snapshot()

    @app.delete("/matrix", status_code=204)
    async def close_matrix(request: Request):
        await _matrix(request).close()
        return Response(status_code=204)

    return app


app = create_app()


if __name__ == "__main__":
    settings = Settings.from_env()
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
