from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping

from lowbot.agent.errors import MalformedMessage
from lowbot.io.contracts import Utterance

SlotExtractor = Callable[[Utterance, "ClassifiedIntent"], Mapping[str, Any] | None]


@dataclass(frozen=True)
class ClassifiedIntent:
    intent_name: str
    score: float

    def __post_init__(self) -> None:
        try:
            score = float(self.score)
        except (TypeError, ValueError):
            score = 0.0
        object.__setattr__(self, "score", min(max(score, 0.0), 1.0))
        object.__setattr__(self, "intent_name", str(self.intent_name or "unknown"))

    def resolved(self, min_score: float) -> bool:
        return self.score > min_score


@dataclass(frozen=True)
class Session:
    author: str
    channel: str


@dataclass(frozen=True)
class RequestEnvelope:
    session: Session
    intent: ClassifiedIntent
    input_data: Mapping[str, Any] | None
    adapter: str
    text: str
    correlation_id: str | None = None


def build_envelope(
    raw_message: Utterance,
    classified_intent: ClassifiedIntent,
    *,
    slot_extractor: SlotExtractor | None = None,
) -> RequestEnvelope:
    author = str(raw_message.author or "").strip()
    channel = str(raw_message.channel or "").strip()
    if not author or not channel:
        raise MalformedMessage(
            "Inbound message lacks session identity",
            author=raw_message.author,
            channel=raw_message.channel,
        )
    input_data: Mapping[str, Any] | None = None
    if slot_extractor is not None:
        extracted = slot_extractor(raw_message, classified_intent)
        if extracted is not None:
            input_data = MappingProxyType(dict(extracted))
    return RequestEnvelope(
        session=Session(author=author, channel=channel),
        intent=classified_intent,
        input_data=input_data,
        adapter=raw_message.adapter,
        text=raw_message.text,
        correlation_id=raw_message.correlation_id,
    )
