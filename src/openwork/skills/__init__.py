"""Skill documents: parsing, discovery, and prompt injection."""

from openwork.skills.discovery import COMMAND_MARKER, SkillDiscovery, match_triggers
from openwork.skills.injector import SkillInjector, format_skill_section
from openwork.skills.models import Skill, SkillInfo
from openwork.skills.parser import ParseResult, SkillParser, extract_frontmatter

__all__ = [
    "COMMAND_MARKER",
    "ParseResult",
    "Skill",
    "SkillDiscovery",
    "SkillInfo",
    "SkillInjector",
    "SkillParser",
    "extract_frontmatter",
    "format_skill_section",
    "match_triggers",
]
