"""Composes skill documents into system prompt text."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from openwork.logging import get_logger
from openwork.models import SkillReference
from openwork.skills.discovery import SkillDiscovery, match_triggers
from openwork.skills.models import Skill

logger = get_logger("skills.injector")

ACTIVE_SKILLS_HEADER = "# Active Skills"
ACTIVE_SKILLS_INTRO = (
    "The following skills are available to you. Use them when appropriate "
    "based on user requests or trigger patterns."
)
TRIGGERED_SKILLS_HEADER = "# Triggered Skills"
TRIGGERED_SKILLS_INTRO = "The following skills were triggered by the user's message:"


def format_skill_section(skill: Skill) -> str:
    """Render one skill as a markdown section."""
    parts = [f"## {skill.name}"]

    meta: list[str] = []
    if skill.triggers:
        meta.append(f"Triggers: {', '.join(skill.triggers)}")
    if skill.description:
        meta.append(skill.description)
    if meta:
        parts.append(f"> {' | '.join(meta)}")

    parts.append("")
    parts.append(skill.content)
    parts.append("")
    return "\n".join(parts)


def _render_block(header: str, intro: str, skills: Sequence[Skill]) -> str:
    if not skills:
        return ""
    return "\n".join([
        "",
        "---",
        "",
        header,
        "",
        intro,
        "",
        *(format_skill_section(s) for s in skills),
    ])


class SkillInjector:
    """
    Loads an agent's skills and renders them for the system prompt.

    Rendering is deterministic: skills appear in the order given, and an
    empty skill list renders as an empty string so the base prompt is left
    untouched.
    """

    def __init__(self, discovery: SkillDiscovery) -> None:
        self.discovery = discovery

    def load_for_agent(self, refs: Iterable[SkillReference]) -> list[Skill]:
        """
        Resolve enabled references, by path first and then by id.

        Unresolvable references are skipped. Each skill id is loaded once.
        """
        skills: list[Skill] = []
        loaded: set[str] = set()
        for ref in refs:
            if not ref.enabled or ref.id in loaded:
                continue
            skill = self.discovery.load_skill(ref.path) if ref.path else None
            if skill is None:
                skill = self.discovery.get_by_id(ref.id)
            if skill is None:
                logger.debug("Skill %s not found, skipping", ref.id)
                continue
            if skill.id in loaded:
                continue
            skills.append(skill)
            loaded.add(skill.id)
        return skills

    def build_context(self, skills: Sequence[Skill]) -> str:
        """Render the ``# Active Skills`` block appended to the base prompt."""
        return _render_block(ACTIVE_SKILLS_HEADER, ACTIVE_SKILLS_INTRO, skills)

    def match_triggers(self, text: str, skills: Iterable[Skill]) -> list[Skill]:
        return match_triggers(text, skills)

    def build_triggered_context(self, text: str, skills: Iterable[Skill]) -> str:
        """Render only the skills whose triggers match ``text``."""
        return _render_block(
            TRIGGERED_SKILLS_HEADER, TRIGGERED_SKILLS_INTRO, match_triggers(text, skills),
        )

    def compose(self, base_prompt: str, skills: Sequence[Skill]) -> str:
        """Base prompt with the skill block appended."""
        return base_prompt + self.build_context(skills)
