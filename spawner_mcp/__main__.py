"""
Package entry point for launching the spawner_mcp server module.

This allows running:
  - python -m spawner_mcp            -> invokes spawner_mcp.server CLI
  - python -m spawner_mcp.server     -> also available directly via the server module

The entry point delegates to spawner_mcp.server.cli_main() which supports CLI
inspection modes and starting the stdio or HTTP MCP server.
"""

from spawner_mcp.server import cli_main


def main() -> None:
    cli_main()


if __name__ == "__main__":
    main()
