from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

from spawner_mcp import server
from spawner_mcp.config import (
    DEFAULT_SESSION_IDLE_TIMEOUT,
    DEFAULT_SKILLS_DIR,
    SERVER_NAME,
    ServerConfig,
)
from spawner_mcp.prompts import MANIFEST_URI, PromptBook
from spawner_mcp.tools import TOOL_DESCRIPTIONS, ToolRouter


def _skills_dir() -> Path:
    # tests/ -> project root is parent, skills under project root
    return Path(__file__).resolve().parents[1] / "skills"


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    skills_dir = _skills_dir()
    if not skills_dir.exists():
        pytest.skip(f"skills directory not found at {skills_dir}")
    monkeypatch.setenv("SPAWNER_SKILLS_DIR", str(skills_dir))
    monkeypatch.setenv("SPAWNER_MEMORY_FILE", str(tmp_path / "memory.json"))
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "server.log"))
    # keep pytest's captured streams free of long-lived handlers
    monkeypatch.setattr(
        server, "configure_logging", lambda config: logging.getLogger(SERVER_NAME)
    )
    return skills_dir


# --- config ---
def test_config_defaults() -> None:
    config = ServerConfig.from_env({})

    assert config.skills_dir == DEFAULT_SKILLS_DIR
    assert config.session_idle_timeout == DEFAULT_SESSION_IDLE_TIMEOUT
    assert config.log_level == "INFO"
    assert "node_modules" in config.ignore_dirs


def test_config_from_env(tmp_path: Path) -> None:
    config = ServerConfig.from_env(
        {
            "SPAWNER_SKILLS_DIR": str(tmp_path / "skills"),
            "LOG_LEVEL": "debug",
            "PORT": "8123",
            "SESSION_IDLE_TIMEOUT": "90",
        }
    )

    assert config.skills_dir == (tmp_path / "skills").resolve()
    assert config.log_level == "DEBUG"
    assert config.port == 8123
    assert config.session_idle_timeout == 90.0


@pytest.mark.parametrize("raw", ["soon", "-5", "0"])
def test_config_rejects_bad_numbers(raw: str) -> None:
    config = ServerConfig.from_env({"SESSION_SWEEP_INTERVAL": raw})

    assert config.session_sweep_interval == 60.0


# --- bundled skills ---
def test_bundled_skills_load() -> None:
    skills_dir = _skills_dir()
    if not skills_dir.exists():
        pytest.skip(f"skills directory not found at {skills_dir}")

    router = server.build_router(ServerConfig(skills_dir=skills_dir))

    ids = {s["id"] for s in router.index.list_skills()}
    assert {"debugging-master", "api-design", "micro-saas-launcher"} <= ids
    for s in router.index.list_skills():
        assert s["name"] and isinstance(s["description"], str)


# --- FastMCP registration ---
def test_fastmcp_server_registers_tools_prompts_and_manifest(
    router: ToolRouter, prompts: PromptBook
) -> None:
    mcp = server.build_server(router, prompts)

    async def scenario() -> tuple[list, str, str, str]:
        async with Client(mcp) as client:
            tools = await client.list_tools()
            found = await client.call_tool("find_expert_skill", {"query": "react"})
            prompt = await client.get_prompt("debug-error", {"error": "build fails"})
            [manifest] = await client.read_resource(MANIFEST_URI)
            return (
                tools,
                found.content[0].text,
                prompt.messages[0].content.text,
                manifest.text,
            )

    tools, found, prompt_text, manifest = asyncio.run(scenario())

    assert {t.name for t in tools} == set(TOOL_DESCRIPTIONS)
    assert [s["id"] for s in json.loads(found)] == ["react"]
    assert "clean environment" in prompt_text
    assert json.loads(manifest)["name"] == SERVER_NAME


def test_fastmcp_tool_errors_surface(router: ToolRouter, prompts: PromptBook) -> None:
    mcp = server.build_server(router, prompts)

    async def scenario() -> None:
        async with Client(mcp) as client:
            await client.call_tool("consult_skill", {"id": "missing"})

    with pytest.raises(ToolError, match="Skill not found: missing"):
        asyncio.run(scenario())


# --- CLI ---
def test_cli_list(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    server.cli_main(["--list", "--category", "maker"])

    listed = json.loads(capsys.readouterr().out)
    assert [s["id"] for s in listed] == ["micro-saas-launcher"]


def test_cli_search_and_detail(cli_env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    server.cli_main(["--search", "DEBUG"])
    found = json.loads(capsys.readouterr().out)
    server.cli_main(["--detail", "debugging-master"])
    detail = json.loads(capsys.readouterr().out)

    assert "debugging-master" in [s["id"] for s in found]
    assert detail["category"] == "development"
    assert "collaboration" in detail


def test_cli_detail_unknown_skill_exits(cli_env: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        server.cli_main(["--detail", "nope"])

    assert excinfo.value.code == 1


def test_cli_validate_and_sharp_edges(
    cli_env: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    source = tmp_path / "app.py"
    source.write_text(
        'api_key = "abcdefghijkl"\nurl = "http://example.com"\nstripe = "sk_test_abc"\n',
        encoding="utf-8",
    )

    server.cli_main(["--validate", str(source)])
    validation = json.loads(capsys.readouterr().out)
    server.cli_main(["--sharp-edges", str(source), "--skill", "micro-saas-launcher"])
    edges = json.loads(capsys.readouterr().out)

    assert [h["rule_id"] for h in validation] == ["hardcoded-secret", "http-plaintext-url"]
    assert [h["id"] for h in edges] == ["stripe-test-key-in-prod"]


def test_cli_serve_starts_stdio_even_with_inspection_flags(
    cli_env: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    started: list[ServerConfig] = []
    monkeypatch.setattr(server, "run", started.append)

    server.cli_main(["--serve", "--list"])

    assert len(started) == 1
    assert started[0].skills_dir == cli_env
    assert capsys.readouterr().out == ""


def test_cli_without_flags_starts_stdio(cli_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    started: list[ServerConfig] = []
    monkeypatch.setattr(server, "run", started.append)

    server.cli_main([])

    assert len(started) == 1
