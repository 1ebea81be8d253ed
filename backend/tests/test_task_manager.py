from __future__ import annotations

import asyncio
import random
from typing import List, Optional

import pytest

from humanlike.orchestrator import TextOrchestrator
from humanlike.providers.base import MockResponder
from humanlike.providers.payload import UpstreamPayload
from humanlike.task_manager import RequestCancelled, RequestScope

pytestmark = pytest.mark.anyio("asyncio")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class DummyRequest:
    def __init__(self) -> None:
        self._disconnected = asyncio.Event()

    async def is_disconnected(self) -> bool:
        if self._disconnected.is_set():
            return True
        await asyncio.sleep(0)
        return False

    def trigger_disconnect(self) -> None:
        self._disconnected.set()


class HangingClient:
    """Upstream whose calls never finish; records starts and aborts."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.prompts: List[str] = []
        self.aborted = 0

    async def complete(self, prompt: str, *, timeout: Optional[float] = None) -> UpstreamPayload:
        self.prompts.append(prompt)
        self.started.set()
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            self.aborted += 1
            raise
        return UpstreamPayload(output="late")


def _orchestrator(client) -> TextOrchestrator:
    return TextOrchestrator(client, MockResponder(random.Random(1)))


async def _disconnect_when_started(request: DummyRequest, client: HangingClient) -> None:
    await asyncio.wait_for(client.started.wait(), timeout=1)
    request.trigger_disconnect()


async def test_disconnect_cancels_detect(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("INFO")
    request = DummyRequest()
    client = HangingClient()
    scope = RequestScope(request, "detect-request", poll_interval=0.01)

    trigger = asyncio.create_task(_disconnect_when_started(request, client))
    with pytest.raises(RequestCancelled) as excinfo:
        await asyncio.wait_for(scope.run(_orchestrator(client).detect("Is this AI?")), timeout=2)
    await trigger

    assert excinfo.value.request_id == "detect-request"
    assert client.aborted == 1
    assert any("detect-request" in record.message for record in caplog.records)


async def test_disconnect_abandons_chunked_humanize() -> None:
    request = DummyRequest()
    client = HangingClient()
    scope = RequestScope(request, "humanize-request", poll_interval=0.01)
    text = " ".join(f"word{i}" for i in range(2500))

    trigger = asyncio.create_task(_disconnect_when_started(request, client))
    with pytest.raises(RequestCancelled):
        await asyncio.wait_for(scope.run(_orchestrator(client).humanize(text)), timeout=2)
    await trigger

    # The first chunk was in flight; no further chunks and no mock substitution for it.
    assert len(client.prompts) == 1
    assert client.aborted == 1


async def test_connected_client_gets_result() -> None:
    scope = RequestScope(DummyRequest(), "ok", poll_interval=0.01)
    result = await scope.run(_orchestrator(None).humanize("However, it works."))
    assert result.rewritten_text == "But it works."
    assert not scope.disconnected


async def test_handler_cancellation_takes_orchestration_down() -> None:
    client = HangingClient()
    scope = RequestScope(DummyRequest(), "shutdown", poll_interval=0.01)

    handler = asyncio.create_task(scope.run(_orchestrator(client).detect("text")))
    await asyncio.wait_for(client.started.wait(), timeout=1)
    handler.cancel()

    with pytest.raises(asyncio.CancelledError):
        await handler
    assert client.aborted == 1
    assert not scope.disconnected
