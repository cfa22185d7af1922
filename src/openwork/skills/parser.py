"""
Parser for markdown skill documents with YAML frontmatter.

Skill files look like this:

```markdown
---
id: code-review
name: Code Review
description: "Review code for bugs and style"
triggers:
  - /review
  - review this
tags: [quality]
---

# Code Review

Instructions for the model...
```
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import yaml

from openwork.errors import SkillParseError
from openwork.skills.models import Skill

# Regex to match YAML frontmatter
FRONTMATTER_PATTERN = re.compile(
    r"^---\s*\n(.*?)\n---\s*(?:\n|$)",
    re.DOTALL,
)


@dataclass
class ParseResult:
    """Outcome of ``SkillParser.safe_parse``."""

    skill: Skill | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.skill is not None


def extract_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """
    Split a document into its frontmatter mapping and body.

    Documents without frontmatter yield an empty mapping and the full text.

    Raises:
        SkillParseError: the frontmatter is not valid YAML or not a mapping.
    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return {}, content
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as e:
        raise SkillParseError(f"Invalid frontmatter: {e}") from e
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise SkillParseError("Frontmatter must be a mapping")
    return data, content[match.end():]


def _string_list(data: dict[str, Any], key: str, errors: list[str]) -> tuple[str, ...]:
    value = data.get(key)
    if value is None:
        return ()
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        errors.append(f"{key}: expected a list of strings")
        return ()
    return tuple(value)


def _optional_string(data: dict[str, Any], key: str, errors: list[str]) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str):
        errors.append(f"{key}: expected a string")
        return None
    return value


class SkillParser:
    """Turns skill documents into ``Skill`` objects."""

    def validate(self, frontmatter: dict[str, Any]) -> list[str]:
        """Return the problems with ``frontmatter``; empty when valid."""
        errors: list[str] = []
        for key in ("id", "name"):
            value = frontmatter.get(key)
            if not isinstance(value, str) or not value.strip():
                errors.append(f"{key}: required non-empty string")
        _string_list(frontmatter, "triggers", errors)
        _string_list(frontmatter, "tags", errors)
        for key in ("description", "author", "version"):
            _optional_string(frontmatter, key, errors)
        return errors

    def parse(self, content: str, path: str = "") -> Skill:
        """
        Parse a skill document.

        Raises:
            SkillParseError: the document has no valid frontmatter or is
                missing required fields.
        """
        try:
            frontmatter, body = extract_frontmatter(content)
        except SkillParseError as e:
            raise SkillParseError(str(e), path=path) from e

        errors = self.validate(frontmatter)
        if errors:
            where = f" in {path}" if path else ""
            raise SkillParseError(f"Invalid skill{where}: {'; '.join(errors)}", path=path)

        return Skill(
            id=frontmatter["id"].strip(),
            name=frontmatter["name"].strip(),
            content=body.strip(),
            path=path,
            description=_optional_string(frontmatter, "description", errors),
            triggers=_string_list(frontmatter, "triggers", errors),
            tags=_string_list(frontmatter, "tags", errors),
            author=_optional_string(frontmatter, "author", errors),
            version=_optional_string(frontmatter, "version", errors),
            frontmatter=frontmatter,
        )

    def safe_parse(self, content: str, path: str = "") -> ParseResult:
        """Like ``parse`` but returns errors instead of raising."""
        try:
            return ParseResult(skill=self.parse(content, path))
        except SkillParseError as e:
            return ParseResult(errors=[str(e)])
