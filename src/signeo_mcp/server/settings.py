from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_APP_BASE_URL = "https://app-mcpim.dev-vm3-03.signatureit.app"
DEFAULT_SYS_BASE_URL = "https://sys-mcpim.dev-vm3-03.signatureit.app"


class Settings(BaseSettings):
    """Signeo MCP server settings.

    All settings can be configured via environment variables with the prefix
    SIGNEO_MCP_. For example, SIGNEO_MCP_PORT=3000 will set port=3000.
    """

    model_config = SettingsConfigDict(
        env_prefix="SIGNEO_MCP_",
        env_file=".env",
        extra="ignore",
    )

    # Server settings
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    server_name: str = "signeo-mcp-server"
    server_version: str = "1.0.0"

    # HTTP settings
    host: str = "127.0.0.1"
    port: int = 3000
    streamable_http_path: str = "/mcp"
    api_path: str = "/api"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Tool store
    database_path: str | None = None
    """SQLite file holding tool descriptions; an in-memory store is used when unset."""

    # Downstream Signeo services
    app_base_url: str = DEFAULT_APP_BASE_URL
    sys_base_url: str = DEFAULT_SYS_BASE_URL
    downstream_timeout: float = 30.0

    # Session settings
    session_idle_timeout: float | None = 1800.0
    """Seconds of inactivity after which a session is closed; None disables reaping."""
    session_reap_interval: float = 60.0

    # Registry settings
    registry_refresh_interval: float | None = None
    """Force a registry reload every N seconds in addition to store notifications."""
    reload_initial_delay: float = 0.5
    reload_max_delay: float = 30.0
    reload_max_attempts: int = 5

    credential_scope: Literal["shared", "session"] = "shared"
    """Whether the login token is shared by every session or kept per session."""
