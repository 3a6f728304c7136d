"""
spawner_mcp.config

Paths, constants and environment-driven settings for the Spawner skills server.

Environment (optional):
- SPAWNER_SKILLS_DIR: root of the skill tree (default: <repo_root>/skills)
- SPAWNER_MEMORY_FILE: project memory JSON file (default: ~/.spawner/memory.json)
- LOG_FILE: rotating log file path (default: <repo_root>/logs/spawner_mcp_server.log)
- LOG_LEVEL: logging level name (default: INFO)
- HOST / PORT: bind address for the HTTP transport (default: 127.0.0.1:3000)
- SESSION_IDLE_TIMEOUT: seconds before an idle HTTP session is reclaimed (default: 1800)
- SESSION_SWEEP_INTERVAL: seconds between idle-session sweeps (default: 60)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from spawner_mcp import __version__

# --- Paths & constants ---
REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_SKILLS_DIR = REPO_ROOT / "skills"
DEFAULT_LOG_DIR = REPO_ROOT / "logs"
DEFAULT_LOG_FILE = DEFAULT_LOG_DIR / "spawner_mcp_server.log"
DEFAULT_MEMORY_FILE = Path.home() / ".spawner" / "memory.json"
SERVER_NAME = "SpawnerSkills"
SERVER_VERSION = __version__

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000
DEFAULT_SESSION_IDLE_TIMEOUT = 30 * 60.0
DEFAULT_SESSION_SWEEP_INTERVAL = 60.0

# Directories never descended into while scanning for skill files.
DEFAULT_IGNORE_DIRS: frozenset[str] = frozenset(
    {
        "node_modules",
        ".git",
        "mcp-server",
        "dist",
        "build",
        "__pycache__",
        ".venv",
        "venv",
    }
)


def get_logger(name: str | None = None) -> logging.Logger:
    """
    function_purpose: Return the server logger, or a named child of it.

    All modules log below SERVER_NAME so configure_logging() covers them.
    """
    base = logging.getLogger(SERVER_NAME)
    return base.getChild(name) if name else base


logger = get_logger("config")


def _env_path(environ: Mapping[str, str], name: str, default: Path) -> Path:
    raw = environ.get(name)
    return Path(raw).expanduser().resolve() if raw else default


def _env_number(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %s", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Ignoring non-positive %s=%r; using %s", name, raw, default)
        return default
    return value


@dataclass(frozen=True)
class ServerConfig:
    """Resolved process settings. Built once by the entry point and passed down."""

    skills_dir: Path = DEFAULT_SKILLS_DIR
    memory_file: Path = DEFAULT_MEMORY_FILE
    log_file: Path = DEFAULT_LOG_FILE
    log_level: str = "INFO"
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    session_idle_timeout: float = DEFAULT_SESSION_IDLE_TIMEOUT
    session_sweep_interval: float = DEFAULT_SESSION_SWEEP_INTERVAL
    ignore_dirs: frozenset[str] = DEFAULT_IGNORE_DIRS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServerConfig:
        """
        function_purpose: Resolve settings from environment variables, falling back to defaults.
        """
        env = os.environ if environ is None else environ
        return cls(
            skills_dir=_env_path(env, "SPAWNER_SKILLS_DIR", DEFAULT_SKILLS_DIR),
            memory_file=_env_path(env, "SPAWNER_MEMORY_FILE", DEFAULT_MEMORY_FILE),
            log_file=_env_path(env, "LOG_FILE", DEFAULT_LOG_FILE),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
            host=env.get("HOST") or DEFAULT_HOST,
            port=int(_env_number(env, "PORT", DEFAULT_PORT)),
            session_idle_timeout=_env_number(
                env, "SESSION_IDLE_TIMEOUT", DEFAULT_SESSION_IDLE_TIMEOUT
            ),
            session_sweep_interval=_env_number(
                env, "SESSION_SWEEP_INTERVAL", DEFAULT_SESSION_SWEEP_INTERVAL
            ),
        )
