from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx

from humanlike.providers.base import (
    ProviderError,
    UpstreamError,
    UpstreamTimeout,
    UpstreamTransportError,
    UpstreamUnconfigured,
)
from humanlike.providers.payload import UpstreamPayload

DEFAULT_API_URL = "https://api.router.example.com/v1/completions"
TIMEOUT_MESSAGE = "Request timeout - please try with a shorter text"


class RouterProvider:
    """Upstream client that posts prompts to the Router completions API."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        api_url: str = DEFAULT_API_URL,
        model: str = "deepseek-r3",
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self._transport = transport

    async def complete(self, prompt: str, *, timeout: Optional[float] = None) -> UpstreamPayload:
        if not self.api_key or not self.api_key.strip():
            raise UpstreamUnconfigured("ROUTER_API_KEY not configured")

        limit = self.timeout if timeout is None else timeout
        try:
            # httpx timeouts are per phase; wait_for bounds the whole exchange.
            return await asyncio.wait_for(self._post(prompt, limit), timeout=limit)
        except asyncio.TimeoutError as exc:
            raise UpstreamTimeout(TIMEOUT_MESSAGE) from exc

    async def _post(self, prompt: str, limit: float) -> UpstreamPayload:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=limit, transport=self._transport) as client:
                response = await client.post(self.api_url, json=self._build_payload(prompt), headers=headers)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise UpstreamTimeout(TIMEOUT_MESSAGE) from exc
        except httpx.HTTPStatusError as exc:
            raise UpstreamError(exc.response.status_code, exc.response.reason_phrase) from exc
        except httpx.RequestError as exc:
            raise UpstreamTransportError(f"Router API request failed: {exc}") from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("Router API returned a non-JSON body") from exc
        return UpstreamPayload.from_json(data)

    def _build_payload(self, prompt: str) -> Dict[str, Any]:
        return {"model": self.model, "input": prompt}


__all__ = ["DEFAULT_API_URL", "RouterProvider"]
