from __future__ import annotations

from typing import Iterable

from lowbot.cognition.envelope import RequestEnvelope
from lowbot.cognition.skills.base import Skill, ensure_skill
from lowbot.observability.log_manager import get_component_logger

logger = get_component_logger("cognition.skills")


class SkillRegistry:
    """Ordered skills; the first whose predicate accepts an envelope wins."""

    def __init__(self, skills: Iterable[Skill] = ()) -> None:
        self._skills: list[Skill] = []
        self._frozen = False
        for skill in skills:
            self.register(skill)

    def register(self, skill: Skill) -> None:
        if self._frozen:
            raise RuntimeError("SkillRegistry is frozen; register skills before startup")
        self._skills.append(ensure_skill(skill))

    def freeze(self) -> "SkillRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def skills(self) -> tuple[Skill, ...]:
        return tuple(self._skills)

    def names(self) -> list[str]:
        return [skill.info.name for skill in self._skills]

    def match(self, envelope: RequestEnvelope) -> Skill | None:
        for skill in self._skills:
            try:
                accepted = bool(skill.can_handle(envelope))
            except Exception as exc:
                logger.exception(
                    "Skill predicate raised event=skills.predicate_failed skill=%s intent=%s",
                    skill.info.name,
                    envelope.intent.intent_name,
                    exc_info=exc,
                    extra={"correlation_id": envelope.correlation_id, "channel": envelope.session.channel},
                )
                continue
            if accepted:
                return skill
        return None

    def __len__(self) -> int:
        return len(self._skills)
