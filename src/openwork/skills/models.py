"""Skill data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SkillInfo:
    """Lightweight skill listing, without the body."""

    id: str
    name: str
    path: str
    description: str | None = None
    triggers: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    author: str | None = None
    version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "triggers": list(self.triggers),
            "tags": list(self.tags),
            "path": self.path,
            "author": self.author,
            "version": self.version,
        }


@dataclass(frozen=True)
class Skill:
    """
    A reusable block of instructions appended to an agent's system prompt.

    Triggers starting with ``/`` are command-style and match as a prefix of
    the user's input; other triggers match anywhere in it.
    """

    id: str
    name: str
    content: str
    path: str = ""
    description: str | None = None
    triggers: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    author: str | None = None
    version: str | None = None
    frontmatter: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_info(self) -> SkillInfo:
        return SkillInfo(
            id=self.id,
            name=self.name,
            path=self.path,
            description=self.description,
            triggers=self.triggers,
            tags=self.tags,
            author=self.author,
            version=self.version,
        )
