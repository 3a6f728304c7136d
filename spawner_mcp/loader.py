"""
spawner_mcp.loader

Discovery and fault-tolerant YAML parsing of skill files.

Skills live one directory per skill, grouped by category:

    <root>/<category>/<skill-id>/skill.yaml
    <root>/<category>/<skill-id>/sharp-edges.yaml     (optional)
    <root>/<category>/<skill-id>/validations.yaml     (optional)
    <root>/<category>/<skill-id>/collaboration.yaml   (optional)

Loading is two-phase: discover candidate paths, then parse each one on its own so that
a single malformed document is logged and skipped instead of aborting the scan.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path, PurePath
from typing import Any

import yaml

from spawner_mcp.config import DEFAULT_IGNORE_DIRS, get_logger

SKILL_FILE = "skill.yaml"
SHARP_EDGES_FILE = "sharp-edges.yaml"
VALIDATIONS_FILE = "validations.yaml"
COLLABORATION_FILE = "collaboration.yaml"

UNKNOWN = "unknown"

logger = get_logger("loader")


def iter_named_files(
    root: Path, filename: str, ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS
) -> list[Path]:
    """
    function_purpose: Locate every `filename` at least one directory below root.

    Ignored directories are pruned before they are descended into. The result is
    sorted so that traversal order (and therefore last-loaded-wins on id collisions)
    is stable.
    """
    if not root.exists():
        logger.warning("Skills directory not found at %s", root)
        return []
    ignored = set(ignore_dirs)
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in ignored)
        if filename not in filenames or Path(dirpath) == root:
            continue
        path = Path(dirpath) / filename
        if path.is_file():
            found.append(path)
    found.sort(key=lambda p: p.relative_to(root).as_posix())
    return found


def derive_identity(relative_path: PurePath) -> tuple[str, str]:
    """
    function_purpose: Derive (skill_id, category) from path segments alone.

    `maker/micro-saas-launcher/skill.yaml` -> ("micro-saas-launcher", "maker").
    File content never takes part, so a broken document cannot corrupt identity.
    """
    parts = relative_path.parts
    skill_id = parts[-2] if len(parts) >= 2 else UNKNOWN
    category = parts[-3] if len(parts) >= 3 else UNKNOWN
    return skill_id, category


def read_yaml(path: Path) -> Any:
    return yaml.safe_load(path.read_text(encoding="utf-8"))


def load_documents(
    root: Path, filename: str, ignore_dirs: Iterable[str] = DEFAULT_IGNORE_DIRS
) -> list[tuple[Path, Any]]:
    """
    function_purpose: Parse every discovered `filename` under root, skipping failures.

    Returns (path, parsed_data) pairs in traversal order. Unreadable or invalid YAML
    is logged and left out; it never stops the remaining files from loading.
    """
    documents: list[tuple[Path, Any]] = []
    for path in iter_named_files(root, filename, ignore_dirs):
        try:
            data = read_yaml(path)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
            logger.error("Failed parsing %s: %s", path.relative_to(root), exc)
            continue
        documents.append((path, data))
    return documents


def read_optional_yaml(path: Path) -> Any:
    """
    function_purpose: Read a sibling file that may not exist.

    Returns None when the file is absent or fails to parse (the failure is logged).
    """
    if not path.is_file():
        return None
    try:
        return read_yaml(path)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as exc:
        logger.error("Failed parsing %s: %s", path, exc)
        return None
