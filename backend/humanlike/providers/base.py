from __future__ import annotations

import random
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from humanlike.models import Confidence, DetectionResult, HumanizeMeta, HumanizeResult

if TYPE_CHECKING:
    from humanlike.providers.payload import UpstreamPayload


class ProviderError(Exception):
    """Base exception for upstream-related failures."""


class UpstreamUnconfigured(ProviderError):
    """Raised when no upstream credential is available."""


class UpstreamTimeout(ProviderError):
    """Raised when the upstream call does not answer in time."""


class UpstreamError(ProviderError):
    """Raised when the upstream answers with a non-success status."""

    def __init__(self, status: int, status_text: str) -> None:
        super().__init__(f"Router API error: {status} {status_text}".rstrip())
        self.status = status
        self.status_text = status_text


class UpstreamTransportError(ProviderError):
    """Raised when the upstream cannot be reached at all."""


class MalformedUpstreamOutput(ProviderError):
    """Raised when upstream output cannot be read as a detection result."""


@runtime_checkable
class UpstreamClient(Protocol):
    """Protocol describing the completion capability required by the app."""

    async def complete(self, prompt: str, *, timeout: Optional[float] = None) -> UpstreamPayload:
        """Send *prompt* upstream and return the raw payload."""


def count_words(text: str) -> int:
    return len(text.split())


def chunk_text(text: str, *, max_chars: int = 2000) -> list[str]:
    """Split *text* into word-aligned chunks closed once they reach *max_chars*."""
    words = text.split()
    chunks: list[str] = []
    buffer: list[str] = []
    length = 0

    for word in words:
        # Joined length grows by the word plus one separating space.
        length += len(word) + (1 if buffer else 0)
        buffer.append(word)
        if length >= max_chars:
            chunks.append(" ".join(buffer))
            buffer = []
            length = 0

    if buffer:
        chunks.append(" ".join(buffer))

    return chunks


MOCK_SUBSTITUTIONS = (
    ("However, ", "But "),
    ("Therefore, ", "So "),
    ("Additionally, ", "Also, "),
    ("Furthermore, ", "And "),
)


class MockResponder:
    """Local stand-in for the upstream model, used in dev mode and as a fallback."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()

    def mock_detect(self, text: str) -> DetectionResult:
        probability = self._rng.randint(0, 100)
        if probability >= 60:
            strength = "strong"
        elif probability >= 30:
            strength = "moderate"
        else:
            strength = "weak"
        return DetectionResult(
            ai_probability=probability,
            confidence=Confidence.for_probability(probability),
            reasoning=(
                f"This {count_words(text)}-word text shows {strength} indicators of AI generation "
                "based on sentence structure patterns and word choice consistency."
            ),
        )

    def mock_humanize(self, text: str) -> HumanizeResult:
        humanized = text
        for source, replacement in MOCK_SUBSTITUTIONS:
            humanized = humanized.replace(source, replacement)
        return HumanizeResult(
            rewritten_text=humanized,
            original_text=text,
            meta=HumanizeMeta(
                original_word_count=count_words(text),
                rewritten_word_count=count_words(humanized),
            ),
        )


__all__ = [
    "MOCK_SUBSTITUTIONS",
    "MalformedUpstreamOutput",
    "MockResponder",
    "ProviderError",
    "UpstreamClient",
    "UpstreamError",
    "UpstreamTimeout",
    "UpstreamTransportError",
    "UpstreamUnconfigured",
    "chunk_text",
    "count_words",
]
