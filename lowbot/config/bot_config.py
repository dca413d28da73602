from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from lowbot.cognition.envelope import SlotExtractor
from lowbot.cognition.intent_classifier import IntentSpec
from lowbot.cognition.skills.base import Skill, ensure_skill
from lowbot.config import settings
from lowbot.io.adapters import AdapterBinding


@dataclass(frozen=True)
class BotConfig:
    adapters: tuple[AdapterBinding, ...]
    skills: tuple[Skill, ...]
    intents: tuple[IntentSpec, ...] = ()
    default_adapter: str = settings.DEFAULT_ADAPTER
    min_score: float = settings.DEFAULT_MIN_SCORE
    max_concurrency: int | None = settings.DEFAULT_MAX_CONCURRENCY
    dispatch_timeout_sec: float | None = settings.DEFAULT_DISPATCH_TIMEOUT_SEC
    locale: str = settings.DEFAULT_LOCALE
    slot_extractor: SlotExtractor | None = None

    def adapter(self, name: str) -> AdapterBinding | None:
        for binding in self.adapters:
            if binding.name == name:
                return binding
        return None


@dataclass
class BotConfigBuilder:
    """Collects adapters and skills before startup; ``build`` snapshots them."""

    default_adapter: str = field(default_factory=settings.get_default_adapter)
    min_score: float = field(default_factory=settings.get_min_score)
    max_concurrency: int | None = field(default_factory=settings.get_max_concurrency)
    dispatch_timeout_sec: float | None = field(default_factory=settings.get_dispatch_timeout_sec)
    locale: str = field(default_factory=settings.get_default_locale)
    slot_extractor: SlotExtractor | None = None
    _adapters: dict[str, AdapterBinding] = field(default_factory=dict)
    _skills: list[Skill] = field(default_factory=list)
    _intents: list[IntentSpec] = field(default_factory=list)

    def add_adapter(self, binding: AdapterBinding) -> "BotConfigBuilder":
        # First binding for a name wins.
        self._adapters.setdefault(binding.name, binding)
        return self

    def add_skill(self, skill: Skill) -> "BotConfigBuilder":
        self._skills.append(ensure_skill(skill))
        return self

    def add_skills(self, skills: Iterable[Skill]) -> "BotConfigBuilder":
        for skill in skills:
            self.add_skill(skill)
        return self

    def skill_names(self) -> list[str]:
        return [skill.info.name for skill in self._skills]

    def add_intents(self, intents: Iterable[IntentSpec]) -> "BotConfigBuilder":
        self._intents.extend(intents)
        return self

    def build(self) -> BotConfig:
        if not self._adapters:
            raise ValueError("BotConfig requires at least one adapter")
        if self.default_adapter not in self._adapters:
            raise ValueError(f"Default adapter {self.default_adapter!r} is not registered")
        return BotConfig(
            adapters=tuple(self._adapters.values()),
            skills=tuple(self._skills),
            intents=tuple(self._intents),
            default_adapter=self.default_adapter,
            min_score=self.min_score,
            max_concurrency=self.max_concurrency,
            dispatch_timeout_sec=self.dispatch_timeout_sec,
            locale=self.locale,
            slot_extractor=self.slot_extractor,
        )
