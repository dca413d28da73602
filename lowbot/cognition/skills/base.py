from __future__ import annotations

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, runtime_checkable

from lowbot.cognition.envelope import RequestEnvelope


@dataclass(frozen=True)
class SkillInfo:
    name: str
    locales: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class Skill(Protocol):
    info: SkillInfo

    def can_handle(self, envelope: RequestEnvelope) -> bool:
        ...

    async def handle(self, envelope: RequestEnvelope) -> Any:
        ...


def ensure_skill(skill: object) -> Skill:
    """Reject malformed plugins at registration instead of mid-dispatch."""
    label = type(skill).__name__
    info = getattr(skill, "info", None)
    if not isinstance(info, SkillInfo) or not str(info.name or "").strip():
        raise TypeError(f"{label} must expose info: SkillInfo with a name")
    if not callable(getattr(skill, "can_handle", None)):
        raise TypeError(f"{label} must define can_handle(envelope)")
    handle = getattr(skill, "handle", None)
    if not callable(handle) or not inspect.iscoroutinefunction(handle):
        raise TypeError(f"{label} must define async handle(envelope)")
    return skill  # type: ignore[return-value]


class IntentSkill(ABC):
    """Skill that claims every envelope whose intent is in ``intents``."""

    info: SkillInfo
    intents: tuple[str, ...] = ()

    def __init__(self, info: SkillInfo | None = None, *, intents: Iterable[str] | None = None) -> None:
        if info is not None:
            self.info = info
        if intents is not None:
            self.intents = tuple(intents)

    def can_handle(self, envelope: RequestEnvelope) -> bool:
        return envelope.intent.intent_name in self.intents

    def locale_text(self, key: str, locale: str, default: str = "") -> str:
        language = str(locale or "").split("-")[0].lower()
        table = self.info.locales.get(language) or self.info.locales.get("en") or {}
        if not isinstance(table, Mapping):
            return default
        return str(table.get(key) or default)

    @abstractmethod
    async def handle(self, envelope: RequestEnvelope) -> Any:
        ...
