import asyncio
import logging
from contextlib import aclosing, suppress
from typing import AsyncIterator, List, Optional

import httpx
from pydantic import ValidationError

from pricematrix.Session import CancelToken
from pricematrix.data.PriceMatrixEvent import PriceMatrixEvent, parse_event
from pricematrix.data.PriceMatrixQuery import PriceMatrixQuery
from pricematrix.errors import PriceStreamError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
KEEP_ALIVE = "keep-alive"


def decode_line(line: str) -> Optional[PriceMatrixEvent]:
    """Decode one SSE line; None for blanks, comments, heartbeats and bad records."""
    line = line.rstrip("\r")
    if not line.strip() or line.startswith(":"):
        return None
    if not line.startswith(DATA_PREFIX):
        # event:, id:, retry: carry nothing we use
        return None

    payload = line[len(DATA_PREFIX):].strip()
    if payload == KEEP_ALIVE:
        logger.debug("Heartbeat")
        return None

    try:
        return parse_event(payload)
    except ValidationError as e:
        logger.warning("Skipping malformed event %r: %s", payload, e.errors(include_url=False))
        return None


class EventStreamDecoder:
    """Reassembles text chunks into lines; a line may span chunk boundaries."""

    def __init__(self):
        self._buffer = ""

    def feed(self, chunk: str) -> List[PriceMatrixEvent]:
        self._buffer += chunk
        lines = self._buffer.split("\n")
        # last element is the incomplete tail (or "" after a trailing newline)
        self._buffer = lines.pop()
        return [event for event in map(decode_line, lines) if event is not None]

    def flush(self) -> List[PriceMatrixEvent]:
        line, self._buffer = self._buffer, ""
        event = decode_line(line)
        return [event] if event is not None else []


async def _next_chunk(chunks: AsyncIterator[str]) -> Optional[str]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


async def _until_cancelled(chunks: AsyncIterator[str], token: CancelToken) -> AsyncIterator[str]:
    """Yield chunks until the body ends or `token` is cancelled, whichever comes first.

    Each read is raced against the token, so a cancel lands while the
    server is silent and the pending read is abandoned.
    """
    cancelled = asyncio.ensure_future(token.wait())
    try:
        while not token.cancelled:
            read = asyncio.ensure_future(_next_chunk(chunks))
            try:
                await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not read.done():
                    read.cancel()
                    with suppress(asyncio.CancelledError):
                        await read
            if read.cancelled():
                return
            chunk = read.result()
            if chunk is None:
                return
            yield chunk
    finally:
        cancelled.cancel()


class PriceStreamClient:
    def __init__(self, client: httpx.AsyncClient, url: str):
        self._client = client
        self.url = url

    async def stream(self, query: PriceMatrixQuery, token: CancelToken) -> AsyncIterator[PriceMatrixEvent]:
        """Yield events until the server closes the stream or `token` is cancelled.

        Not restartable; every call issues a new request. Cancellation ends the
        iteration silently, transport failures raise PriceStreamError.
        """
        decoder = EventStreamDecoder()
        try:
            async with self._client.stream(
                "POST",
                self.url,
                params=query.to_params(),
                json=query.to_body(),
                headers={"Accept": "text/event-stream"},
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise PriceStreamError(
                        f"Price matrix stream returned HTTP {response.status_code}",
                        status_code=response.status_code,
                        details={"body": response.text[:500]},
                    )

                async with aclosing(_until_cancelled(response.aiter_text(), token)) as chunks:
                    async for chunk in chunks:
                        for event in decoder.feed(chunk):
                            if token.cancelled:
                                return
                            yield event

                for event in decoder.flush():
                    if not token.cancelled:
                        yield event
        except httpx.HTTPError as e:
            raise PriceStreamError(f"Price matrix stream failed: {e}") from e
