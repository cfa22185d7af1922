"""Discovery and caching of skill documents on disk."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from pathlib import Path

from openwork.errors import SkillParseError
from openwork.logging import get_logger
from openwork.skills.models import Skill, SkillInfo
from openwork.skills.parser import SkillParser

logger = get_logger("skills.discovery")

COMMAND_MARKER = "/"
SKILL_SUFFIX = ".md"


def _cache_key(path: str | Path) -> str:
    return str(Path(path).expanduser())


def match_triggers(text: str, skills: Iterable[Skill]) -> list[Skill]:
    """
    Return the skills with at least one trigger matching ``text``.

    Matching is case-insensitive. Command-style triggers (starting with
    ``/``) must be a prefix of the stripped input; any other trigger may
    appear anywhere in it. Input order is preserved.
    """
    lowered = text.lower().strip()
    matched: list[Skill] = []
    for skill in skills:
        for trigger in skill.triggers:
            needle = trigger.lower()
            if not needle:
                continue
            if trigger.startswith(COMMAND_MARKER):
                hit = lowered.startswith(needle)
            else:
                hit = needle in lowered
            if hit:
                matched.append(skill)
                break
    return matched


class SkillDiscovery:
    """
    Finds ``*.md`` skill documents in a list of directories.

    Directories are scanned non-recursively, in order; when two documents
    declare the same id the one from the earlier directory wins. Parsed
    skills are cached by path until ``invalidate_skill`` or ``clear_cache``.

    Example:
        discovery = SkillDiscovery(["~/.openwork/skills", "./skills"])
        for skill in discovery.discover_all():
            print(skill.id, skill.triggers)
    """

    def __init__(
        self,
        skill_dirs: Iterable[str | Path] = (),
        parser: SkillParser | None = None,
    ) -> None:
        self._skill_dirs: list[Path] = []
        for d in skill_dirs:
            self.add_skill_directory(d)
        self._parser = parser or SkillParser()
        self._cache: dict[str, Skill] = {}
        self._generation = 0  # bumped on every invalidation
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    @property
    def skill_dirs(self) -> list[Path]:
        return list(self._skill_dirs)

    def add_skill_directory(self, directory: str | Path) -> None:
        path = Path(directory).expanduser()
        if path not in self._skill_dirs:
            self._skill_dirs.append(path)

    def remove_skill_directory(self, directory: str | Path) -> None:
        path = Path(directory).expanduser()
        if path in self._skill_dirs:
            self._skill_dirs.remove(path)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_skill(self, path: str | Path) -> Skill | None:
        """Load one skill document, from cache when possible. None on failure."""
        if not path:
            return None
        key = _cache_key(path)
        with self._lock:
            cached = self._cache.get(key)
            generation = self._generation
        if cached is not None:
            return cached

        try:
            content = Path(key).read_text(encoding="utf-8")
            skill = self._parser.parse(content, key)
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Cannot read skill %s: %s", key, e)
            return None
        except SkillParseError as e:
            logger.warning("Skipping invalid skill %s: %s", key, e)
            return None

        with self._lock:
            # an invalidation during the read means the content may be stale
            if generation == self._generation:
                self._cache[key] = skill
        return skill

    def discover_from_directory(self, directory: str | Path) -> list[Skill]:
        path = Path(directory).expanduser()
        if not path.is_dir():
            return []
        try:
            entries = sorted(path.iterdir())
        except OSError as e:
            logger.debug("Cannot list %s: %s", path, e)
            return []

        skills: list[Skill] = []
        for entry in entries:
            if entry.suffix == SKILL_SUFFIX and entry.is_file():
                skill = self.load_skill(entry)
                if skill is not None:
                    skills.append(skill)
        return skills

    def discover_all(self) -> list[Skill]:
        """All skills across directories, de-duplicated by id."""
        skills: list[Skill] = []
        seen: set[str] = set()
        for directory in list(self._skill_dirs):
            for skill in self.discover_from_directory(directory):
                if skill.id not in seen:
                    seen.add(skill.id)
                    skills.append(skill)
        return skills

    def get_by_id(self, skill_id: str) -> Skill | None:
        with self._lock:
            for skill in self._cache.values():
                if skill.id == skill_id:
                    return skill
        for skill in self.discover_all():
            if skill.id == skill_id:
                return skill
        return None

    def list_skills(self) -> list[SkillInfo]:
        return [s.to_info() for s in self.discover_all()]

    def skill_exists(self, path: str | Path) -> bool:
        p = Path(path).expanduser()
        return p.suffix == SKILL_SUFFIX and p.is_file()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def match_triggers(self, text: str, skills: Iterable[Skill]) -> list[Skill]:
        return match_triggers(text, skills)

    def find_by_trigger(self, text: str) -> list[Skill]:
        return match_triggers(text, self.discover_all())

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._generation += 1

    def invalidate_skill(self, path: str | Path) -> None:
        with self._lock:
            self._cache.pop(_cache_key(path), None)
            self._generation += 1

    @property
    def cached_paths(self) -> list[str]:
        with self._lock:
            return list(self._cache)
