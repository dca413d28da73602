from __future__ import annotations

import time
from typing import Any

from lowbot.io.contracts import Utterance


def normalize_payload(payload: dict[str, Any], *, adapter: str) -> Utterance:
    """Map a raw adapter payload onto an Utterance; session fields may be absent."""
    text = str(payload.get("text") or payload.get("content") or "").strip()
    author = _as_optional_str(payload.get("author") or payload.get("user_id") or payload.get("from_user"))
    channel = payload.get("channel")
    if channel is None:
        channel = payload.get("chat_id") if payload.get("chat_id") is not None else payload.get("target")
    metadata = payload.get("metadata") if isinstance(payload.get("metadata"), dict) else {}
    return Utterance(
        text=text,
        author=author,
        channel=_as_optional_str(channel),
        adapter=adapter,
        timestamp=_as_float(payload.get("timestamp"), default=time.time()),
        correlation_id=_as_optional_str(payload.get("correlation_id")),
        metadata={**metadata, "raw": payload},
    )


def _as_optional_str(value: object | None) -> str | None:
    if value is None:
        return None
    rendered = str(value).strip()
    return rendered or None


def _as_float(value: object | None, *, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default
