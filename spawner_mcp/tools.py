"""
spawner_mcp.tools

The tool surface registered on the FastMCP server.

ToolRouter owns the injected services (skill index, rule engines, memory store,
advice producers) and exposes one method per MCP tool. `invoke` runs a tool by name,
logs the call with its duration and renders the payload as text; failures surface
as fastmcp ToolError. Argument schemas come from the FastMCP tool signatures in
spawner_mcp.server.
"""

from __future__ import annotations

import json
import time
from typing import Any

from fastmcp.exceptions import ToolError

from spawner_mcp.advice import Orchestrator, Unstick
from spawner_mcp.config import get_logger
from spawner_mcp.memory import MemoryStore
from spawner_mcp.rules import SharpEdgeEngine, ValidationEngine
from spawner_mcp.skills import SkillIndex

logger = get_logger("tools")

ARG_PREVIEW_LIMIT = 80

TOOL_DESCRIPTIONS: dict[str, str] = {
    "list_available_skills": (
        "List all available skill categories and skills. Use this to explore "
        "what capabilities are available."
    ),
    "find_expert_skill": (
        "Use this to find specialized expert knowledge. Input a query like "
        "'react patterns' or 'database migration' to find skills that can help you."
    ),
    "consult_skill": (
        "Load the full context and instructions for a specific skill. Use this "
        "when you need deep expertise on a topic."
    ),
    "validate_code_implementation": (
        "Validate code against defined patterns and rules. Use this before "
        "finalizing any code."
    ),
    "access_project_memory": (
        "Store or retrieve project-level decisions and context. Use this to "
        "maintain continuity."
    ),
    "analyze_risk_sharp_edges": (
        "Scan code for 'sharp edges' - high-risk patterns or known gotchas. "
        "Use this proactively."
    ),
    "get_troubleshooting_advice": (
        "Get expert advice when you are stuck or seeing errors. Provides "
        "specific solutions based on the problem."
    ),
    "orchestrate_development_plan": (
        "Create a comprehensive development plan for a high-level task. Break "
        "down complex goals into actionable steps."
    ),
}


def render(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def _preview(arguments: Any) -> Any:
    if not isinstance(arguments, dict):
        return arguments
    preview: dict[str, Any] = {}
    for key, value in arguments.items():
        if isinstance(value, str) and len(value) > ARG_PREVIEW_LIMIT:
            value = f"{value[:ARG_PREVIEW_LIMIT]}... ({len(value)} chars)"
        preview[key] = value
    return preview


class ToolRouter:
    def __init__(
        self,
        index: SkillIndex,
        validations: ValidationEngine,
        sharp_edges: SharpEdgeEngine,
        memory: MemoryStore,
        orchestrator: Orchestrator,
        unstick: Unstick,
    ) -> None:
        self.index = index
        self.validations = validations
        self.sharp_edges = sharp_edges
        self.memory = memory
        self.orchestrator = orchestrator
        self.unstick = unstick

    # --- tools ---
    def list_available_skills(self, category: str | None = None) -> list[dict[str, str]]:
        return self.index.list_skills(category)

    def find_expert_skill(
        self, query: str, category: str | None = None
    ) -> list[dict[str, str]]:
        return self.index.search_skills(query, category)

    def consult_skill(self, id: str) -> dict[str, Any]:
        skill = self.index.get_skill(id)
        if skill is None:
            raise ToolError(f"Skill not found: {id}")
        return skill.to_dict()

    def validate_code_implementation(
        self, code: str, language: str | None = None, context: str | None = None
    ) -> list[dict[str, Any]]:
        return self.validations.apply(code)

    def access_project_memory(
        self,
        action: str,
        key: str | None = None,
        value: str | None = None,
    ) -> Any:
        if action == "set":
            if not key or value is None:
                raise ToolError("Key and value required for set")
            return self.memory.set(key, value).to_dict()
        if action == "get":
            if not key:
                raise ToolError("Key required for get")
            entry = self.memory.get(key)
            return entry.to_dict() if entry else None
        if action == "list":
            return [e.to_dict() for e in self.memory.list_entries()]
        raise ToolError(f"Invalid action: {action}")

    def analyze_risk_sharp_edges(
        self, code: str | None = None, skill_id: str | None = None
    ) -> list[dict[str, Any]]:
        if code is None:
            return self.sharp_edges.edges_for(skill_id)
        return self.sharp_edges.apply(code, skill_id)

    def get_troubleshooting_advice(self, problem: str) -> str:
        return self.unstick.get_advice(problem)

    def orchestrate_development_plan(self, task: str) -> str:
        return self.orchestrator.plan(task)

    # --- dispatch ---
    def description(self, name: str) -> str:
        return TOOL_DESCRIPTIONS[name]

    def invoke(
        self,
        name: str,
        arguments: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> str:
        """
        function_purpose: Run a tool by name and render its payload as text.

        Raises ToolError for unknown tools, tool-level errors and unexpected failures
        (the latter logged with traceback).
        """
        if name not in TOOL_DESCRIPTIONS:
            raise ToolError(f"Unknown tool: {name}")
        arguments = arguments or {}
        started = time.perf_counter()
        error: str | None = None
        try:
            return render(getattr(self, name)(**arguments))
        except ToolError as exc:
            error = str(exc)
            raise
        except Exception as exc:
            logger.exception("Tool %s failed", name)
            error = f"Error running {name}: {exc}"
            raise ToolError(error) from exc
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            if error is None:
                logger.info(
                    "Tool call: %s [%s] args=%s %.1fms",
                    name,
                    session_id or "unknown",
                    _preview(arguments),
                    duration_ms,
                )
            else:
                logger.warning(
                    "Tool call: %s FAILED [%s] args=%s %.1fms: %s",
                    name,
                    session_id or "unknown",
                    _preview(arguments),
                    duration_ms,
                    error,
                )
