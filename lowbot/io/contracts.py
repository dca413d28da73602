from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Utterance:
    text: str
    author: str | None
    channel: str | None
    adapter: str
    timestamp: float
    correlation_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
