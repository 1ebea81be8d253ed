from .base import (
    MalformedUpstreamOutput,
    MockResponder,
    ProviderError,
    UpstreamClient,
    UpstreamError,
    UpstreamTimeout,
    UpstreamTransportError,
    UpstreamUnconfigured,
    chunk_text,
    count_words,
)
from .payload import UpstreamPayload, extract_structured, extract_text
from .router_provider import RouterProvider

__all__ = [
    "MalformedUpstreamOutput",
    "MockResponder",
    "ProviderError",
    "RouterProvider",
    "UpstreamClient",
    "UpstreamError",
    "UpstreamPayload",
    "UpstreamTimeout",
    "UpstreamTransportError",
    "UpstreamUnconfigured",
    "chunk_text",
    "count_words",
    "extract_structured",
    "extract_text",
]
