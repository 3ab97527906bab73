import sys

import click

from signeo_mcp.server.app import SigneoMCP
from signeo_mcp.server.settings import Settings


@click.command()
@click.option("--host", default=None, help="Host to bind to (default: SIGNEO_MCP_HOST or 127.0.0.1)")
@click.option("--port", type=int, default=None, help="Port to listen on for HTTP (default: SIGNEO_MCP_PORT or 3000)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Logging level",
)
@click.option(
    "--database",
    "database_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="SQLite file holding tool descriptions (in-memory when omitted)",
)
@click.option(
    "--credential-scope",
    type=click.Choice(["shared", "session"]),
    default=None,
    help="Share the login token across sessions or keep one per session",
)
def main(
    host: str | None,
    port: int | None,
    log_level: str | None,
    database_path: str | None,
    credential_scope: str | None,
) -> int:
    """Serve the Signeo MCP tools over streamable HTTP."""
    overrides = {
        "host": host,
        "port": port,
        "log_level": log_level.upper() if log_level else None,
        "database_path": database_path,
        "credential_scope": credential_scope,
    }
    settings = Settings(**{key: value for key, value in overrides.items() if value is not None})
    SigneoMCP(settings).run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
