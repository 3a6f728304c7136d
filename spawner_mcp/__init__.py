"""
spawner_mcp: MCP server package exposing Spawner skills (expert guidance, patterns,
sharp edges and validation rules) as tools, prompts and resources.

This package provides the server entrypoints (stdio and session-aware HTTP) and the
services behind them: the skill index, the rule engines and the project memory store.
"""

__version__: str = "1.0.0"


def version() -> str:
    return __version__


__all__: list[str] = ["__version__", "version"]
