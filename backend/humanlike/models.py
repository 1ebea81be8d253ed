from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_TEXT_CHARS = 50_000


class TextValidationError(ValueError):
    """Raised when submitted text is empty or too long."""


def validate_text(text: str) -> str:
    if not isinstance(text, str) or len(text) < 1:
        raise TextValidationError("Text is required")
    if len(text) > MAX_TEXT_CHARS:
        raise TextValidationError(f"Text too long (max {MAX_TEXT_CHARS} characters)")
    return text


class Confidence(str, Enum):
    VERY_CONFIDENT = "Very confident"
    MAYBE = "Maybe"
    NOT_CONFIDENT = "Not confident"

    @classmethod
    def for_probability(cls, probability: int) -> "Confidence":
        if probability >= 80:
            return cls.VERY_CONFIDENT
        if probability >= 40:
            return cls.MAYBE
        return cls.NOT_CONFIDENT


class TextRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=MAX_TEXT_CHARS)


class DetectionResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ai_probability: int = Field(..., ge=0, le=100)
    confidence: Confidence
    reasoning: str


class HumanizeMeta(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_word_count: int = Field(..., alias="originalWordCount")
    rewritten_word_count: int = Field(..., alias="rewrittenWordCount")
    # Only set when the text went through the chunked path.
    chunks_processed: Optional[int] = Field(default=None, alias="chunksProcessed")


class HumanizeResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rewritten_text: str = Field(..., alias="rewrittenText")
    original_text: str = Field(..., alias="originalText")
    meta: HumanizeMeta


__all__ = [
    "Confidence",
    "DetectionResult",
    "HumanizeMeta",
    "HumanizeResult",
    "MAX_TEXT_CHARS",
    "TextRequest",
    "TextValidationError",
    "validate_text",
]
