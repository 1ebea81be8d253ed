from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from humanlike.models import DetectionResult
from humanlike.providers.base import MalformedUpstreamOutput


class UpstreamPayload(BaseModel):
    """Raw completion payload; ``output`` wins over ``text`` when both are set."""

    model_config = ConfigDict(extra="allow")

    output: Any = None
    text: Any = None

    @classmethod
    def from_json(cls, data: Any) -> "UpstreamPayload":
        if isinstance(data, dict):
            return cls.model_validate(data)
        # Lists and scalars are kept whole so they still serialise on fallback.
        return cls.model_validate({"raw": data})

    def generated_text(self) -> Optional[str]:
        for candidate in (self.output, self.text):
            if isinstance(candidate, str) and candidate.strip():
                return candidate
        return None


def extract_text(payload: UpstreamPayload) -> str:
    generated = payload.generated_text()
    if generated is not None:
        return generated
    return json.dumps(payload.model_dump(exclude_none=True))


def find_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` span of *text*, ignoring braces inside strings."""
    # Single pass: open positions on a stack, earliest closed span wins.
    opened: list[int] = []
    best: Optional[tuple[int, int]] = None
    in_string = False
    escaped = False
    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == "{":
            opened.append(index)
        elif not opened:
            continue
        elif char == '"':
            in_string = True
        elif char == "}":
            start = opened.pop()
            if best is None or start < best[0]:
                best = (start, index)
            if not opened:
                # Nothing earlier is still open, so no later span can start before this one.
                break
    if best is None:
        return None
    return text[best[0] : best[1] + 1]


def extract_structured(payload: UpstreamPayload) -> DetectionResult:
    candidate = find_json_object(extract_text(payload))
    if candidate is None:
        raise MalformedUpstreamOutput("No JSON found in response")
    try:
        data = json.loads(candidate)
        return DetectionResult.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as exc:
        raise MalformedUpstreamOutput("Upstream JSON is not a detection result") from exc


__all__ = ["UpstreamPayload", "extract_structured", "extract_text", "find_json_object"]
