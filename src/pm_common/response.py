"""Unified engine result envelope.

Every public engine operation returns this shape instead of raising:
{
    "code": 0,           // 0=success, non-0=error code (see errors.py)
    "message": "success",
    "kind": null,        // error kind on failure, e.g. "InsufficientBalance"
    "data": { ... },     // null on error
    "timestamp": "...",
    "request_id": "..."
}
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


class EngineResult(BaseModel):
    code: int = 0
    message: str = "success"
    kind: str | None = None
    data: Any = None
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = Field(default_factory=lambda: f"req_{uuid.uuid4().hex[:12]}")

    @property
    def ok(self) -> bool:
        return self.code == 0


def success_response(data: Any = None) -> EngineResult:
    return EngineResult(code=0, message="success", data=data)


def error_response(code: int, message: str, kind: str | None = None) -> EngineResult:
    return EngineResult(code=code, message=message, kind=kind, data=None)
