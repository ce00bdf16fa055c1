import asyncio
from typing import Awaitable, TypeVar

import structlog
from fastapi import Request

logger = structlog.stdlib.get_logger(__name__)

T = TypeVar("T")

DISCONNECT_POLL_INTERVAL = 0.5


class ClientDisconnected(Exception):
    """The inbound client went away before the upstream work finished."""


async def run_until_disconnected(
    request: Request,
    awaitable: Awaitable[T],
    poll_interval: float = DISCONNECT_POLL_INTERVAL,
) -> T:
    """Await upstream work, cancelling it if the client disconnects.

    The request body must already be consumed; polling reads from the same
    receive channel. A result that arrives after the client left is closed
    if it has an ``aclose`` coroutine (e.g. an open httpx response).

    Raises:
        ClientDisconnected: the client left and the work was cancelled
    """
    task = asyncio.ensure_future(awaitable)
    delivered = False
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                delivered = True
                return task.result()

            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling upstream request")
                raise ClientDisconnected()
    finally:
        if not delivered:
            await _discard(task)


async def _discard(task: asyncio.Future) -> None:
    if not task.done():
        task.cancel()
        await asyncio.wait({task})

    if task.cancelled():
        return

    if task.exception() is not None:
        logger.debug("Abandoned upstream request failed", error=str(task.exception()))
        return

    aclose = getattr(task.result(), "aclose", None)
    if aclose is not None:
        await aclose()
