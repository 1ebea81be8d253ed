from __future__ import annotations

import logging
from typing import Optional

from humanlike.models import DetectionResult, HumanizeMeta, HumanizeResult, validate_text
from humanlike.prompts import detector_prompt, humanizer_prompt
from humanlike.providers.base import (
    MalformedUpstreamOutput,
    MockResponder,
    ProviderError,
    UpstreamClient,
    chunk_text,
    count_words,
)
from humanlike.providers.payload import extract_structured

logger = logging.getLogger(__name__)


class TextOrchestrator:
    """Drive detection and humanization against the upstream model or the mock path.

    A ``None`` client means no credential is configured and every call is served
    by the mock responder. Chunks are sent one at a time so at most one upstream
    call is outstanding per request and output order matches input order.
    """

    def __init__(
        self,
        client: Optional[UpstreamClient],
        mock: MockResponder,
        *,
        chunk_word_threshold: int = 2000,
        chunk_max_chars: int = 2000,
        timeout: float = 120.0,
    ) -> None:
        self.client = client
        self.mock = mock
        self.chunk_word_threshold = chunk_word_threshold
        self.chunk_max_chars = chunk_max_chars
        self.timeout = timeout

    @property
    def dev_mode(self) -> bool:
        return self.client is None

    async def detect(self, text: str) -> DetectionResult:
        validate_text(text)
        if self.client is None:
            logger.info("Dev mode: using mock AI detector response")
            return self.mock.mock_detect(text)

        payload = await self.client.complete(detector_prompt(text), timeout=self.timeout)
        try:
            return extract_structured(payload)
        except MalformedUpstreamOutput as exc:
            logger.warning("Upstream detection output unusable, substituting mock result: %s", exc)
            return self.mock.mock_detect(text)

    async def humanize(self, text: str) -> HumanizeResult:
        validate_text(text)
        if self.client is None:
            logger.info("Dev mode: using mock humanizer response")
            return self.mock.mock_humanize(text)

        if count_words(text) <= self.chunk_word_threshold:
            rewritten = await self._rewrite(self.client, text)
            return self._result(text, rewritten)

        chunks = chunk_text(text, max_chars=self.chunk_max_chars)
        rewritten_chunks = []
        for index, chunk in enumerate(chunks, start=1):
            try:
                rewritten_chunks.append(await self._rewrite(self.client, chunk))
            except ProviderError as exc:
                logger.warning("Chunk %d/%d failed, substituting mock rewrite: %s", index, len(chunks), exc)
                rewritten_chunks.append(self.mock.mock_humanize(chunk).rewritten_text)

        return self._result(text, " ".join(rewritten_chunks), chunks_processed=len(chunks))

    async def _rewrite(self, client: UpstreamClient, text: str) -> str:
        payload = await client.complete(humanizer_prompt(text), timeout=self.timeout)
        # Blank upstream output falls back to the text that was sent.
        return payload.generated_text() or text

    @staticmethod
    def _result(original: str, rewritten: str, *, chunks_processed: Optional[int] = None) -> HumanizeResult:
        return HumanizeResult(
            rewritten_text=rewritten,
            original_text=original,
            meta=HumanizeMeta(
                original_word_count=count_words(original),
                rewritten_word_count=count_words(rewritten),
                chunks_processed=chunks_processed,
            ),
        )


__all__ = ["TextOrchestrator"]
