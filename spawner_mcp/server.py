"""
spawner_mcp.server

FastMCP server exposing Spawner skills as MCP tools, prompts and a manifest resource,
plus the process entry points (stdio server, session-aware HTTP server, inspection CLI).

Server-level documentation:
- Purpose: Make the skills under the skills directory programmatically accessible to
  MCP-aware clients, and check code snippets against their validation / sharp-edge rules.
- Why use it:
  * Agents can list and search skills by category, name, id or description
  * Load a full skill (identity, patterns, anti-patterns, sharp edges, validations)
  * Validate code against regex rules and scan it for known sharp edges
  * Keep project decisions in a small persistent memory
  * Get a troubleshooting strategy or a tool-by-tool development plan
- Transports: STDIO by default (one client); `--http` serves /mcp with explicit
  sessions that are reclaimed after an idle timeout
- Logging: Console (stderr) + rotating file logs

Usage:
  python -m spawner_mcp                 # starts stdio server
  python -m spawner_mcp --http          # starts HTTP server on HOST:PORT
  python -m spawner_mcp --help          # CLI for inspection without starting a server
"""

import argparse
import json
import logging
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Annotated, Literal

from fastmcp import Context, FastMCP
from pydantic import Field

from spawner_mcp.advice import Orchestrator, Unstick
from spawner_mcp.config import SERVER_NAME, SERVER_VERSION, ServerConfig
from spawner_mcp.memory import MemoryStore
from spawner_mcp.prompts import (
    MANIFEST_DESCRIPTION,
    MANIFEST_URI,
    PROMPT_DESCRIPTIONS,
    SERVER_INSTRUCTIONS,
    PromptBook,
)
from spawner_mcp.rules import SharpEdgeEngine, ValidationEngine, sort_by_severity
from spawner_mcp.sessions import SessionRegistry
from spawner_mcp.skills import SkillIndex
from spawner_mcp.tools import ToolRouter
from spawner_mcp.transport import create_app, serve

STDIO_SESSION = "stdio"


def _session_of(ctx: Context | None) -> str:
    # label for the tool-call log line; outside a request context there is no session
    if ctx is None:
        return STDIO_SESSION
    try:
        return ctx.session_id or STDIO_SESSION
    except RuntimeError:
        return STDIO_SESSION


# --- Logging setup ---
def configure_logging(config: ServerConfig) -> logging.Logger:
    """
    function_purpose: Configure server logging to both console and rotating file.

    - Creates the log directory if needed.
    - Console output goes to stderr so the stdio transport's stdout stays clean.
    - Safe to call more than once; handlers are only attached the first time.
    """
    logger = logging.getLogger(SERVER_NAME)
    logger.setLevel(logging.getLevelNamesMapping().get(config.log_level, logging.INFO))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"
    )

    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    # Rotating file handler (5 files, 5MB each)
    try:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            config.log_file, maxBytes=5 * 1024 * 1024, backupCount=5
        )
    except OSError as exc:
        logger.warning("File logging disabled (%s): %s", config.log_file, exc)
    else:
        fh.setFormatter(formatter)
        logger.addHandler(fh)
        logger.info("Logging initialized. File: %s", str(config.log_file))
    return logger


# --- Service wiring ---
def build_router(config: ServerConfig) -> ToolRouter:
    """
    function_purpose: Construct the process-wide services and the tool router over them.
    """
    index = SkillIndex(config.skills_dir, config.ignore_dirs)
    return ToolRouter(
        index=index,
        validations=ValidationEngine(config.skills_dir, config.ignore_dirs),
        sharp_edges=SharpEdgeEngine(config.skills_dir, config.ignore_dirs),
        memory=MemoryStore(config.memory_file),
        orchestrator=Orchestrator(index),
        unstick=Unstick(index),
    )


def build_server(router: ToolRouter, prompts: PromptBook) -> FastMCP:
    """
    function_purpose: Register the tools, prompts and manifest resource on a FastMCP server.

    The signatures below are the only argument schemas. Every tool delegates to
    ToolRouter.invoke for logging and error handling; the stdio and HTTP transports
    both serve the returned server.
    """
    mcp = FastMCP(SERVER_NAME, version=SERVER_VERSION, instructions=SERVER_INSTRUCTIONS)

    @mcp.tool(
        name="list_available_skills",
        description=router.description("list_available_skills"),
    )
    def list_available_skills(
        category: Annotated[
            str | None, Field(description="Optional category to filter by")
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        return router.invoke(
            "list_available_skills", {"category": category}, _session_of(ctx)
        )

    @mcp.tool(
        name="find_expert_skill", description=router.description("find_expert_skill")
    )
    def find_expert_skill(
        query: Annotated[
            str, Field(description="Search term for skills (name or description)")
        ],
        category: Annotated[
            str | None, Field(description="Optional category to filter by")
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        return router.invoke(
            "find_expert_skill",
            {"query": query, "category": category},
            _session_of(ctx),
        )

    @mcp.tool(name="consult_skill", description=router.description("consult_skill"))
    def consult_skill(
        id: Annotated[str, Field(description="The unique ID of skill to load")],
        ctx: Context | None = None,
    ) -> str:
        return router.invoke("consult_skill", {"id": id}, _session_of(ctx))

    @mcp.tool(
        name="validate_code_implementation",
        description=router.description("validate_code_implementation"),
    )
    def validate_code_implementation(
        code: Annotated[str, Field(description="Code content to validate")],
        language: Annotated[
            str | None, Field(description="Programming language of code")
        ] = None,
        context: Annotated[
            str | None, Field(description="Optional skill ID the code relates to")
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        return router.invoke(
            "validate_code_implementation",
            {"code": code, "language": language, "context": context},
            _session_of(ctx),
        )

    @mcp.tool(
        name="access_project_memory",
        description=router.description("access_project_memory"),
    )
    def access_project_memory(
        action: Annotated[
            Literal["set", "get", "list"], Field(description="Action to perform")
        ],
        key: Annotated[str | None, Field(description="Key for memory entry")] = None,
        value: Annotated[
            str | None, Field(description="Value to store (only for 'set')")
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        return router.invoke(
            "access_project_memory",
            {"action": action, "key": key, "value": value},
            _session_of(ctx),
        )

    @mcp.tool(
        name="analyze_risk_sharp_edges",
        description=router.description("analyze_risk_sharp_edges"),
    )
    def analyze_risk_sharp_edges(
        code: Annotated[
            str | None, Field(description="Code content to scan for sharp edges")
        ] = None,
        skill_id: Annotated[
            str | None, Field(description="Specific skill to check for sharp edges")
        ] = None,
        ctx: Context | None = None,
    ) -> str:
        return router.invoke(
            "analyze_risk_sharp_edges",
            {"code": code, "skill_id": skill_id},
            _session_of(ctx),
        )

    @mcp.tool(
        name="get_troubleshooting_advice",
        description=router.description("get_troubleshooting_advice"),
    )
    def get_troubleshooting_advice(
        problem: Annotated[str, Field(description="Description of stuck state")],
        ctx: Context | None = None,
    ) -> str:
        return router.invoke(
            "get_troubleshooting_advice", {"problem": problem}, _session_of(ctx)
        )

    @mcp.tool(
        name="orchestrate_development_plan",
        description=router.description("orchestrate_development_plan"),
    )
    def orchestrate_development_plan(
        task: Annotated[str, Field(description="The user's high-level goal")],
        ctx: Context | None = None,
    ) -> str:
        return router.invoke(
            "orchestrate_development_plan", {"task": task}, _session_of(ctx)
        )

    @mcp.prompt(name="plan-project", description=PROMPT_DESCRIPTIONS["plan-project"])
    def plan_project(task: str) -> str:
        return prompts.plan_project(task)

    @mcp.prompt(name="review-code", description=PROMPT_DESCRIPTIONS["review-code"])
    def review_code(
        code: str, language: str | None = None, context: str | None = None
    ) -> str:
        return prompts.review_code(code, language, context)

    @mcp.prompt(name="debug-error", description=PROMPT_DESCRIPTIONS["debug-error"])
    def debug_error(error: str) -> str:
        return prompts.debug_error(error)

    @mcp.resource(
        MANIFEST_URI,
        name="manifest",
        description=MANIFEST_DESCRIPTION,
        mime_type="application/json",
    )
    def manifest() -> str:
        return prompts.manifest_text()

    return mcp


# --- Entry points ---
def run(config: ServerConfig) -> None:
    """
    function_purpose: Start the MCP stdio server.
    """
    logger = configure_logging(config)
    logger.info("Server starting with skills_dir=%s", str(config.skills_dir))
    router = build_router(config)
    build_server(router, PromptBook(router)).run()  # stdio transport by default


def run_http(config: ServerConfig) -> None:
    """
    function_purpose: Start the session-aware HTTP server.

    Each client session gets its own MCP SDK transport connected to the FastMCP
    server; idle sessions are swept on a timer.
    """
    logger = configure_logging(config)
    logger.info("HTTP server starting with skills_dir=%s", str(config.skills_dir))
    router = build_router(config)
    mcp = build_server(router, PromptBook(router))
    registry = SessionRegistry(
        mcp._mcp_server,
        idle_timeout=config.session_idle_timeout,
    )
    serve(create_app(registry, config.session_sweep_interval), config.host, config.port)


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def cli_main(argv: list[str] | None = None) -> None:
    """
    function_purpose: CLI for inspecting skills and rules, or starting a server.

    Usage:
      python -m spawner_mcp --list [--category CATEGORY]
      python -m spawner_mcp --search "<QUERY>" [--category CATEGORY]
      python -m spawner_mcp --detail <ID>
      python -m spawner_mcp --validate <FILE>
      python -m spawner_mcp --sharp-edges <FILE> [--skill <ID>]
      python -m spawner_mcp --serve
      python -m spawner_mcp --http [--host HOST] [--port PORT]
    """
    parser = argparse.ArgumentParser(
        prog="spawner_mcp",
        description="Inspect Spawner skills and rules, or start the MCP server.",
    )
    parser.add_argument(
        "--list", action="store_true", help="List all discovered skills and exit"
    )
    parser.add_argument("--category", help="Restrict --list/--search to a category")
    parser.add_argument("--search", metavar="QUERY", help="Search skills by substring")
    parser.add_argument("--detail", metavar="ID", help="Show the full record of a skill")
    parser.add_argument(
        "--validate", metavar="FILE", type=Path, help="Run validation rules over FILE"
    )
    parser.add_argument(
        "--sharp-edges", metavar="FILE", type=Path, help="Scan FILE for sharp edges"
    )
    parser.add_argument("--skill", metavar="ID", help="Scope --sharp-edges to one skill")
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Start MCP stdio server, ignoring inspection flags (default when no flags used)",
    )
    parser.add_argument(
        "--http", action="store_true", help="Start the session-aware HTTP server"
    )
    parser.add_argument("--host", help="HTTP bind host (overrides HOST)")
    parser.add_argument("--port", type=int, help="HTTP bind port (overrides PORT)")

    args = parser.parse_args(argv)
    config = ServerConfig.from_env()
    if args.host or args.port:
        config = replace(
            config, host=args.host or config.host, port=args.port or config.port
        )

    if args.http:
        run_http(config)
        return

    if args.serve:
        run(config)
        return

    inspecting = args.list or args.search or args.detail or args.validate or args.sharp_edges
    if not inspecting:
        run(config)
        return

    logger = configure_logging(config)
    router = build_router(config)

    if args.list:
        logger.info("Listing skills...")
        _print_json(router.index.list_skills(args.category))
        return

    if args.search:
        logger.info("Search query: %s", args.search)
        _print_json(router.index.search_skills(args.search, args.category))
        return

    if args.detail:
        logger.info("Detail for skill: %s", args.detail)
        skill = router.index.get_skill(args.detail)
        if skill is None:
            parser.exit(1, f"Skill not found: {args.detail}\n")
        _print_json(skill.to_dict())
        return

    if args.validate:
        logger.info("Validating %s", args.validate)
        code = args.validate.read_text(encoding="utf-8")
        _print_json(sort_by_severity(router.validations.apply(code)))
        return

    logger.info("Scanning %s for sharp edges", args.sharp_edges)
    code = args.sharp_edges.read_text(encoding="utf-8")
    _print_json(sort_by_severity(router.sharp_edges.apply(code, args.skill)))


if __name__ == "__main__":
    cli_main()
