"""
spawner_mcp.skills

Skill records and the in-memory knowledge index.

The index is built lazily on first query from every `skill.yaml` under the skills root
and kept for the life of the process. Listing and search return a reduced projection
(id, name, category, truncated description) to keep tool responses small; the full
record including nested patterns is only returned by `get_skill`.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from spawner_mcp.config import DEFAULT_IGNORE_DIRS, get_logger
from spawner_mcp.loader import (
    COLLABORATION_FILE,
    SHARP_EDGES_FILE,
    SKILL_FILE,
    VALIDATIONS_FILE,
    derive_identity,
    load_documents,
    read_optional_yaml,
)

DESCRIPTION_LIMIT = 200

logger = get_logger("skills")


@dataclass
class Skill:
    id: str
    name: str
    category: str
    description: str
    path: str
    identity: Any = None
    patterns: Any = None
    anti_patterns: Any = None
    sharp_edges: list[dict[str, Any]] | None = None
    validations: list[dict[str, Any]] | None = None
    collaboration: dict[str, Any] | None = None

    def summary(self) -> dict[str, str]:
        """Reduced projection used by list and search."""
        description = self.description or ""
        if len(description) > DESCRIPTION_LIMIT:
            description = description[:DESCRIPTION_LIMIT] + "..."
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": description,
        }

    def to_dict(self) -> dict[str, Any]:
        """Full record. Sibling-file fields are left out entirely when absent."""
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "path": self.path,
            "identity": self.identity,
            "patterns": self.patterns,
            "anti_patterns": self.anti_patterns,
        }
        for field_name in ("sharp_edges", "validations", "collaboration"):
            value = getattr(self, field_name)
            if value is not None:
                data[field_name] = value
        return data


def _description_of(data: dict[str, Any]) -> str:
    description = data.get("description")
    if isinstance(description, str) and description:
        return description
    identity = data.get("identity")
    if isinstance(identity, dict) and isinstance(identity.get("role"), str):
        return identity["role"]
    return ""


def parse_skill(path: Path, root: Path, data: Any) -> Skill:
    """
    function_purpose: Build a Skill from a parsed skill.yaml.

    Identity (id, category) comes from the path; everything else from content.
    Raises ValueError when the document is not a mapping.
    """
    if not isinstance(data, dict):
        raise ValueError(f"expected a mapping, got {type(data).__name__}")
    skill_id, category = derive_identity(path.relative_to(root))
    name = data.get("name")
    return Skill(
        id=skill_id,
        name=name if isinstance(name, str) and name else skill_id,
        category=category,
        description=_description_of(data),
        path=str(path),
        identity=data.get("identity"),
        patterns=data.get("patterns"),
        anti_patterns=data.get("anti_patterns"),
    )


def attach_siblings(skill: Skill, skill_dir: Path) -> None:
    """
    function_purpose: Attach optional sharp-edges, validations and collaboration data.

    Each sibling is probed independently; a missing or malformed file leaves the
    matching field as None.
    """
    edges = read_optional_yaml(skill_dir / SHARP_EDGES_FILE)
    if isinstance(edges, dict) and isinstance(edges.get("sharp_edges"), list):
        skill.sharp_edges = edges["sharp_edges"]

    validations = read_optional_yaml(skill_dir / VALIDATIONS_FILE)
    if isinstance(validations, dict) and isinstance(validations.get("validations"), list):
        skill.validations = validations["validations"]

    collaboration = read_optional_yaml(skill_dir / COLLABORATION_FILE)
    if isinstance(collaboration, dict):
        nested = collaboration.get("collaboration")
        skill.collaboration = nested if isinstance(nested, dict) else collaboration


def load_skills(
    root: Path, ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS
) -> dict[str, Skill]:
    """
    function_purpose: Load every skill under root into an id-keyed mapping.

    Empty documents are skipped, invalid ones logged and skipped. On an id collision
    the later path in traversal order wins.
    """
    skills: dict[str, Skill] = {}
    for path, data in load_documents(root, SKILL_FILE, ignore_dirs):
        if not data:
            continue
        try:
            skill = parse_skill(path, root, data)
        except ValueError as exc:
            logger.error("Failed loading skill from %s: %s", path.relative_to(root), exc)
            continue
        attach_siblings(skill, path.parent)
        if skill.id in skills:
            logger.warning(
                "Duplicate skill id '%s': %s replaces %s",
                skill.id,
                skill.path,
                skills[skill.id].path,
            )
        skills[skill.id] = skill
    logger.info("Loaded %d skills from %s", len(skills), root)
    return skills


class SkillIndex:
    """Lazily loaded, read-only catalogue of skills."""

    def __init__(
        self, root: Path, ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS
    ) -> None:
        self.root = Path(root)
        self.ignore_dirs = frozenset(ignore_dirs)
        self._skills: dict[str, Skill] = {}
        self._loaded = False
        self._lock = threading.Lock()

    def reload(self) -> None:
        skills = load_skills(self.root, self.ignore_dirs)
        with self._lock:
            self._skills = skills
            self._loaded = True

    def ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded:
                return
            self._skills = load_skills(self.root, self.ignore_dirs)
            self._loaded = True

    def all_skills(self) -> list[Skill]:
        self.ensure_loaded()
        return list(self._skills.values())

    def list_skills(self, category: str | None = None) -> list[dict[str, str]]:
        return [
            s.summary()
            for s in self.all_skills()
            if not category or s.category == category
        ]

    def search_skills(
        self, query: str, category: str | None = None
    ) -> list[dict[str, str]]:
        """
        function_purpose: Case-insensitive substring search over name, id and description.

        Results keep traversal order; there is no ranking.
        """
        q = (query or "").strip().lower()
        results: list[dict[str, str]] = []
        for s in self.all_skills():
            if category and s.category != category:
                continue
            if (
                q in s.name.lower()
                or q in s.id.lower()
                or q in (s.description or "").lower()
            ):
                results.append(s.summary())
        return results

    def get_skill(self, skill_id: str) -> Skill | None:
        self.ensure_loaded()
        return self._skills.get(skill_id)

    def categories(self) -> list[str]:
        return sorted({s.category for s in self.all_skills()})
