from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from typing import Any, Coroutine, Optional, TypeVar

from fastapi import Request

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RequestCancelled(Exception):
    """Raised when the client went away before its detect/humanize call finished."""

    def __init__(self, request_id: str) -> None:
        super().__init__("Client cancelled the request")
        self.request_id = request_id


class RequestScope:
    """Run one orchestration call per request and abort it if the client disconnects.

    The call runs as its own task next to a watcher that polls the connection.
    A disconnect cancels the task, which cancels any in-flight upstream call
    with it, so nothing partial is returned.
    """

    def __init__(self, request: Request, request_id: str, *, poll_interval: float = 0.1) -> None:
        self.request = request
        self.request_id = request_id
        self.poll_interval = poll_interval
        self.disconnected = False

    async def run(self, coro: Coroutine[Any, Any, T]) -> T:
        task = asyncio.create_task(coro)
        watcher = asyncio.create_task(self._watch(task))
        try:
            return await task
        except asyncio.CancelledError:
            if self.disconnected:
                raise RequestCancelled(self.request_id) from None
            raise
        finally:
            watcher.cancel()
            with suppress(asyncio.CancelledError):
                await watcher
            if not task.done():
                # The handler itself was cancelled; take the orchestration down with it.
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task

    async def _watch(self, task: "asyncio.Task[Any]") -> None:
        while not task.done():
            if await self.request.is_disconnected():
                self.disconnected = True
                logger.info("Client disconnected, cancelling request %s", self.request_id)
                task.cancel()
                return
            await asyncio.sleep(self.poll_interval)


async def provide_request_scope(request: Request) -> RequestScope:
    """FastAPI dependency building the request's cancellation scope."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    return RequestScope(request, request_id)


__all__ = ["RequestCancelled", "RequestScope", "provide_request_scope"]
