"""Single-hop HTTP forwarding to the upstream registry.

Request bodies arrive as one-shot streams but may have to be sent twice (the
first attempt and the authenticated retry, plus any redirect hops), so they
are spooled into a temporary file before the first attempt.
"""

import tempfile
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
import structlog
from starlette.concurrency import run_in_threadpool

from .errors import InvalidTargetURL, NetworkError, SpoolError
from .types import DEFAULT_SPOOL_MAX_MEMORY

logger = structlog.stdlib.get_logger(__name__)

BODYLESS_METHODS = frozenset({"GET", "HEAD"})
CHUNK_SIZE = 65536


class SpooledBody:
    """Replayable copy of an inbound request body.

    Small bodies stay in memory. Once the spool rolls over to disk, file
    access runs in the threadpool like starlette's UploadFile does.
    """

    def __init__(self, max_memory: int = DEFAULT_SPOOL_MAX_MEMORY):
        self._file = tempfile.SpooledTemporaryFile(max_size=max_memory)
        self.size = 0

    @property
    def _in_memory(self) -> bool:
        rolled_to_disk = getattr(self._file, "_rolled", True)
        return not rolled_to_disk

    async def _write(self, chunk: bytes) -> None:
        if self._in_memory:
            self._file.write(chunk)
        else:
            await run_in_threadpool(self._file.write, chunk)

    async def _read(self) -> bytes:
        if self._in_memory:
            return self._file.read(CHUNK_SIZE)
        return await run_in_threadpool(self._file.read, CHUNK_SIZE)

    async def fill(self, stream: AsyncIterator[bytes]) -> None:
        try:
            async for chunk in stream:
                await self._write(chunk)
                self.size += len(chunk)
        except OSError as e:
            raise SpoolError(f"Failed to spool request body: {e}") from e

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield the body from the start; each call is an independent pass."""
        try:
            if self._in_memory:
                self._file.seek(0)
            else:
                await run_in_threadpool(self._file.seek, 0)
            while True:
                chunk = await self._read()
                if not chunk:
                    break
                yield chunk
        except OSError as e:
            raise SpoolError(f"Failed to read spooled request body: {e}") from e

    def close(self) -> None:
        self._file.close()


@asynccontextmanager
async def spool_request_body(
    method: str,
    stream: AsyncIterator[bytes],
    max_memory: int = DEFAULT_SPOOL_MAX_MEMORY,
) -> AsyncIterator[Optional[SpooledBody]]:
    """Capture a request body for the lifetime of one relay.

    GET and HEAD yield None without touching the stream. The spool is
    closed on every exit path.
    """
    if method.upper() in BODYLESS_METHODS:
        yield None
        return

    try:
        body = SpooledBody(max_memory)
    except OSError as e:
        raise SpoolError(f"Failed to create request body spool: {e}") from e

    try:
        await body.fill(stream)
        logger.debug("Spooled request body", size=body.size)
        yield body
    finally:
        body.close()


class RequestForwarder:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def forward(
        self,
        method: str,
        url: str,
        headers: httpx.Headers,
        body: Optional[SpooledBody] = None,
    ) -> httpx.Response:
        """Issue exactly one upstream request.

        The response is opened in streaming mode; callers own closing it.

        Raises:
            NetworkError: connection, DNS, TLS or timeout failure
            InvalidTargetURL: the URL cannot be requested
        """
        content = None
        if body is not None and method.upper() not in BODYLESS_METHODS:
            headers = headers.copy()
            headers["Content-Length"] = str(body.size)
            content = body.stream()

        logger.debug("Forwarding request", method=method, target_url=url)

        try:
            request = self.client.build_request(
                method, url, headers=headers, content=content
            )
            return await self.client.send(request, stream=True, follow_redirects=False)
        except httpx.InvalidURL as e:
            raise InvalidTargetURL(f"Cannot request {url!r}: {e}") from e
        except httpx.HTTPError as e:
            logger.error(
                "HTTP error while forwarding request",
                error=str(e),
                target_url=url,
            )
            raise NetworkError(f"{method} {url} failed: {e}") from e
