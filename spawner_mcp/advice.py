"""
spawner_mcp.advice

Keyword-driven planning and "unstick" guidance.

Both producers walk an ordered list of AdviceRule entries top to bottom, keep every
rule whose keywords appear (case-insensitively) in the input, and number the kept
suggestions into a plan. Extending either one means adding a rule, not a branch.
"""

from __future__ import annotations

import random
from dataclasses import dataclass

from spawner_mcp.skills import SkillIndex


@dataclass(frozen=True)
class AdviceRule:
    keywords: tuple[str, ...]
    suggestion: str

    def matches(self, text: str) -> bool:
        lowered = text.lower()
        return any(k in lowered for k in self.keywords)


def numbered(lines: list[str]) -> str:
    return "\n".join(f"{i}. {line}" for i, line in enumerate(lines, start=1))


ORCHESTRATION_RULES: tuple[AdviceRule, ...] = (
    AdviceRule(
        ("saas", "build", "create"),
        "**Find Skills**: Use `find_expert_skill` to locate relevant skills "
        '(e.g. search for "saas" or "launcher"), then `consult_skill` to load them.',
    ),
    AdviceRule(
        ("stuck", "debug", "error"),
        "**Get Unstuck**: Use `get_troubleshooting_advice` with your problem description.",
    ),
    AdviceRule(
        ("validate", "check", "review"),
        "**Validate Code**: Use `validate_code_implementation` on your code files.",
    ),
    AdviceRule(
        ("watch", "warn", "risk"),
        "**Check Sharp Edges**: Use `analyze_risk_sharp_edges` to identify risks.",
    ),
    AdviceRule(
        ("remember", "decision", "context"),
        "**Record Decisions**: Use `access_project_memory` to store key decisions.",
    ),
)

EXPLORE_STEP = (
    "**Explore**: Use `list_available_skills` to explore what's available."
)

UNSTICK_RULES: tuple[AdviceRule, ...] = (
    AdviceRule(
        ("error", "exception", "traceback", "stack trace"),
        "Read the first error in the output, not the last; later errors are often fallout.",
    ),
    AdviceRule(
        ("test", "flaky", "assert"),
        "Write the smallest failing test that reproduces the problem, then make it pass.",
    ),
    AdviceRule(
        ("slow", "performance", "timeout", "memory"),
        "Measure before changing anything: profile the slow path and compare against a baseline.",
    ),
    AdviceRule(
        ("build", "compile", "install", "dependency", "import"),
        "Start from a clean environment and pin the dependency versions that last worked.",
    ),
    AdviceRule(
        ("deploy", "production", "config", "environment"),
        "Diff the failing environment's configuration against one that works.",
    ),
    AdviceRule(
        ("loop", "going in circles", "tried everything"),
        "Stop and write down every assumption; test the one you are most sure of first.",
    ),
)

OBLIQUE_STRATEGIES: tuple[str, ...] = (
    "State the problem in words as clearly as possible.",
    "What is the simplest version of this problem?",
    "Have you tried turning it off and on again?",
    "Explain the problem to a rubber duck.",
    "What assumption are you making that is wrong?",
    "Look at the logs.",
    "Isolate the component.",
    "Write a failing test case.",
)

DEBUGGING_CHECKLIST = (
    "Reproduce the issue consistently.",
    "Isolate the cause (binary search).",
    "Fix the root cause, not the symptom.",
    "Verify the fix.",
)

DEBUGGING_SKILL_ID = "debugging-master"


class Orchestrator:
    def __init__(self, index: SkillIndex | None = None) -> None:
        self.index = index

    def relevant_skills(self, task: str) -> list[str]:
        """Ids of skills whose id or name appears in the task text."""
        if self.index is None:
            return []
        lowered = task.lower()
        return [
            s.id
            for s in self.index.all_skills()
            if s.id.lower() in lowered or s.name.lower() in lowered
        ]

    def plan(self, task: str) -> str:
        steps = [r.suggestion for r in ORCHESTRATION_RULES if r.matches(task)]
        if not steps:
            steps = [EXPLORE_STEP]
        parts = [f'## Orchestration Plan for: "{task}"', "", numbered(steps)]
        skills = self.relevant_skills(task)
        if skills:
            parts += ["", "### Relevant skills"]
            parts += [f"- `{skill_id}` (load with `consult_skill`)" for skill_id in skills]
        parts += ["", "Use these tools to proceed."]
        return "\n".join(parts)


class Unstick:
    def __init__(self, index: SkillIndex, rng: random.Random | None = None) -> None:
        self.index = index
        self._rng = rng or random.Random()

    def _skill_guidance(self) -> str | None:
        skill = self.index.get_skill(DEBUGGING_SKILL_ID)
        if skill is None or not isinstance(skill.patterns, list):
            return None
        for pattern in skill.patterns:
            if not isinstance(pattern, dict):
                continue
            name = str(pattern.get("name", "")).lower()
            if "scientific" in name or "process" in name:
                text = pattern.get("guidance") or pattern.get("description")
                if text:
                    return str(text).strip()
        return None

    def get_advice(self, problem: str) -> str:
        sections: list[str] = []
        guidance = self._skill_guidance()
        if guidance:
            sections.append(f"## From Debugging Master\n\n{guidance}")

        suggestions = [r.suggestion for r in UNSTICK_RULES if r.matches(problem)]
        if suggestions:
            sections.append(f"## Suggested Next Steps\n\n{numbered(suggestions)}")
        else:
            strategy = self._rng.choice(OBLIQUE_STRATEGIES)
            sections.append(
                f"## Unstick Strategy\n\n{strategy}\n\n"
                f"### Debugging Checklist\n{numbered(list(DEBUGGING_CHECKLIST))}"
            )
        return "\n\n".join(sections)
