"""Skills and intents bundled for the terminal bot."""

from __future__ import annotations

from typing import Callable, Iterable

from lowbot.cognition.envelope import RequestEnvelope
from lowbot.cognition.intent_classifier import IntentSpec
from lowbot.cognition.skills.base import IntentSkill, SkillInfo

BUILTIN_INTENTS: tuple[IntentSpec, ...] = (
    IntentSpec(
        intent_name="greet",
        patterns=(r"\b(hi|hello|hey|good morning|good afternoon|good evening|hola|buenos dias|buenas)\b",),
        examples=("hello", "hi there"),
    ),
    IntentSpec(
        intent_name="help",
        patterns=(r"\b(help|ayuda)\b", r"\bwhat can you do\b"),
        examples=("what can you do",),
    ),
)


class GreetingSkill(IntentSkill):
    info = SkillInfo(
        name="greeting",
        locales={
            "en": {"greeting": "Hey there"},
            "es": {"greeting": "Hola"},
        },
    )
    intents = ("greet",)

    def __init__(self, locale: str = "en-US") -> None:
        super().__init__()
        self._locale = locale

    async def handle(self, envelope: RequestEnvelope) -> str:
        return self.locale_text("greeting", self._locale, default="Hey there")


class HelpSkill(IntentSkill):
    info = SkillInfo(
        name="help",
        locales={
            "en": {"header": "I can help with:"},
            "es": {"header": "Puedo ayudarte con:"},
        },
    )
    intents = ("help",)

    def __init__(self, skill_names: Callable[[], Iterable[str]] | None = None, locale: str = "en-US") -> None:
        super().__init__()
        self._skill_names = skill_names or (lambda: (self.info.name,))
        self._locale = locale

    async def handle(self, envelope: RequestEnvelope) -> str:
        header = self.locale_text("header", self._locale, default="I can help with:")
        names = ", ".join(self._skill_names()) or "nothing yet"
        return f"{header} {names}."


def builtin_skills(
    locale: str = "en-US", skill_names: Callable[[], Iterable[str]] | None = None
) -> list[IntentSkill]:
    """Greeting and help; ``skill_names`` is read when help is asked for."""
    return [GreetingSkill(locale=locale), HelpSkill(skill_names, locale=locale)]
