from __future__ import annotations

import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ResultType = Literal["detector", "humanizer"]


class SessionResult(BaseModel):
    id: str
    type: ResultType
    input: str
    output: Dict[str, Any]
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ResultStore:
    """Keep the most recent results in memory, evicting the oldest past *capacity*."""

    def __init__(self, capacity: int = 100) -> None:
        self.capacity = capacity
        self._results: "OrderedDict[str, SessionResult]" = OrderedDict()

    def save(self, kind: ResultType, text: str, output: Dict[str, Any]) -> SessionResult:
        result = SessionResult(id=str(uuid.uuid4()), type=kind, input=text, output=output)
        self._results[result.id] = result
        while len(self._results) > self.capacity:
            self._results.popitem(last=False)
        return result

    def get(self, result_id: str) -> Optional[SessionResult]:
        return self._results.get(result_id)

    def recent(self, limit: int = 10) -> List[SessionResult]:
        return list(reversed(self._results.values()))[:limit]

    def __len__(self) -> int:
        return len(self._results)


__all__ = ["ResultStore", "SessionResult"]
