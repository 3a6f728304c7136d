"""
spawner_mcp.prompts

MCP prompt bodies (plan-project, review-code, debug-error) and the `spawner://manifest`
resource content, registered on the FastMCP server in spawner_mcp.server.
"""

from __future__ import annotations

import json
from typing import Any

from spawner_mcp.config import SERVER_NAME, SERVER_VERSION
from spawner_mcp.rules import sort_by_severity
from spawner_mcp.tools import TOOL_DESCRIPTIONS, ToolRouter

MANIFEST_URI = "spawner://manifest"

WORKFLOW = [
    "1. Use list_available_skills to explore available skills and categories",
    "2. Use find_expert_skill to search for specific expertise",
    "3. Use consult_skill to load detailed skill instructions",
    "4. Use validate_code_implementation to check code quality",
    "5. Use analyze_risk_sharp_edges to identify potential issues",
    "6. Use get_troubleshooting_advice when stuck",
    "7. Use orchestrate_development_plan for complex tasks",
    "8. Use access_project_memory to maintain state across sessions",
]

TIPS = [
    "Always consult relevant skills before implementing new features",
    "Run validation and sharp edge checks before finalizing code",
    "Use project memory to preserve important decisions",
    "The orchestrate tool can break down complex tasks automatically",
]

SERVER_INSTRUCTIONS = (
    "Spawner Skills MCP Server\n"
    "\n"
    "Purpose:\n"
    "- Serve expert skills (guidance, patterns, anti-patterns, sharp edges, validation rules)\n"
    "  indexed from the skills directory, and check code snippets against their regex rules.\n"
    "\n"
    "Workflow:\n"
    + "\n".join(f"- {step}" for step in WORKFLOW)
    + "\n\nTips:\n"
    + "\n".join(f"- {tip}" for tip in TIPS)
    + "\n\nPrompts: plan-project, review-code, debug-error. Resource: spawner://manifest.\n"
)

PROMPT_DESCRIPTIONS: dict[str, str] = {
    "plan-project": (
        "Analyze the request and create a step-by-step development plan using orchestration."
    ),
    "review-code": "Check the code for sharp edges and validation errors.",
    "debug-error": "Use unstick strategies to solve this error.",
}

MANIFEST_DESCRIPTION = "System manifest describing available capabilities"


class PromptBook:
    def __init__(self, router: ToolRouter) -> None:
        self.router = router

    # --- prompt bodies ---
    def plan_project(self, task: str) -> str:
        return self.router.orchestrator.plan(task)

    def review_code(
        self, code: str, language: str | None = None, context: str | None = None
    ) -> str:
        findings = sort_by_severity(
            self.router.validations.apply(code)
            + self.router.sharp_edges.apply(code, context)
        )
        header = "Here is the code review"
        if language:
            header += f" ({language})"
        if not findings:
            return f"{header}:\n\nNo validation or sharp-edge findings."
        return f"{header}:\n\n{json.dumps(findings, indent=2, ensure_ascii=False)}"

    def debug_error(self, error: str) -> str:
        return self.router.unstick.get_advice(error)

    def manifest(self) -> dict[str, Any]:
        return {
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
            "description": (
                f"This MCP server provides {len(self.router.index.all_skills())} expert "
                "skills for development, deployment, and project management"
            ),
            "capabilities": {
                "tools": [
                    {"name": name, "description": description}
                    for name, description in TOOL_DESCRIPTIONS.items()
                ],
                "prompts": [
                    {"name": name, "description": description}
                    for name, description in PROMPT_DESCRIPTIONS.items()
                ],
                "resources": [
                    {
                        "name": "manifest",
                        "uri": MANIFEST_URI,
                        "description": MANIFEST_DESCRIPTION,
                    }
                ],
            },
            "categories": self.router.index.categories(),
            "usage": {"workflow": WORKFLOW, "tips": TIPS},
        }

    def manifest_text(self) -> str:
        return json.dumps(self.manifest(), indent=2, ensure_ascii=False)
