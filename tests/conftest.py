from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from spawner_mcp.advice import Orchestrator, Unstick
from spawner_mcp.memory import MemoryStore
from spawner_mcp.prompts import PromptBook
from spawner_mcp.rules import SharpEdgeEngine, ValidationEngine
from spawner_mcp.server import build_server
from spawner_mcp.skills import SkillIndex
from spawner_mcp.tools import ToolRouter


def write_yaml(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


def write_skill(
    root: Path,
    category: str,
    skill_id: str,
    skill: dict[str, Any] | None = None,
    sharp_edges: list[dict[str, Any]] | None = None,
    validations: list[dict[str, Any]] | None = None,
    collaboration: dict[str, Any] | None = None,
) -> Path:
    """Create <root>/<category>/<skill_id>/ with a skill.yaml and optional siblings."""
    skill_dir = root / category / skill_id
    write_yaml(skill_dir / "skill.yaml", skill or {"name": skill_id})
    if sharp_edges is not None:
        write_yaml(skill_dir / "sharp-edges.yaml", {"sharp_edges": sharp_edges})
    if validations is not None:
        write_yaml(skill_dir / "validations.yaml", {"validations": validations})
    if collaboration is not None:
        write_yaml(skill_dir / "collaboration.yaml", {"collaboration": collaboration})
    return skill_dir


@pytest.fixture
def skills_root(tmp_path: Path) -> Path:
    """A small, well-formed skill tree used across the test modules."""
    root = tmp_path / "skills"
    write_skill(
        root,
        "frontend",
        "react",
        {
            "name": "React",
            "description": "JavaScript library for building user interfaces",
            "patterns": [{"name": "Hooks", "description": "Prefer function components"}],
        },
        validations=[
            {
                "id": "no-console",
                "name": "Console logging",
                "severity": "low",
                "type": "regex",
                "pattern": r"console\.log",
                "message": "Remove console.log",
                "fix_action": "Use a logger",
            }
        ],
    )
    write_skill(
        root,
        "ai",
        "llamaindex",
        {
            "name": "LlamaIndex",
            "description": "RAG framework for building AI applications with retrieval-augmented generation",
        },
        sharp_edges=[
            {
                "id": "unbounded-context",
                "summary": "Whole documents stuffed into the prompt",
                "severity": "high",
                "solution": "Chunk and retrieve",
                "detection_pattern": "load_all_documents",
            }
        ],
    )
    write_skill(
        root,
        "development",
        "debugging-master",
        {
            "name": "Debugging Master",
            "identity": {"role": "Methodical debugging specialist"},
            "patterns": [
                {
                    "name": "Scientific Method Debugging",
                    "guidance": "Observe, hypothesize, predict, test.",
                }
            ],
        },
        collaboration={"delegates_to": ["react"]},
    )
    return root


@pytest.fixture
def router(skills_root: Path, tmp_path: Path) -> ToolRouter:
    index = SkillIndex(skills_root)
    return ToolRouter(
        index=index,
        validations=ValidationEngine(skills_root),
        sharp_edges=SharpEdgeEngine(skills_root),
        memory=MemoryStore(tmp_path / "memory" / "memory.json"),
        orchestrator=Orchestrator(index),
        unstick=Unstick(index),
    )


@pytest.fixture
def prompts(router: ToolRouter) -> PromptBook:
    return PromptBook(router)


@pytest.fixture
def protocol_server(router: ToolRouter, prompts: PromptBook) -> Any:
    """The low-level MCP server behind the FastMCP app, as the HTTP sessions see it."""
    return build_server(router, prompts)._mcp_server
