from lowbot.cognition.skills.base import IntentSkill, Skill, SkillInfo, ensure_skill
from lowbot.cognition.skills.registry import SkillRegistry

__all__ = ["IntentSkill", "Skill", "SkillInfo", "SkillRegistry", "ensure_skill"]
