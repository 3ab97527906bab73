"""Assembles the Signeo MCP server: store, registry, tools, sessions and HTTP routes."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator

import anyio
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Mount, Route

from signeo_mcp.server.admin import create_admin_routes, health
from signeo_mcp.server.credentials import CredentialRelay, create_credential_relay
from signeo_mcp.server.lowlevel.server import Server
from signeo_mcp.server.registry import ToolRegistry
from signeo_mcp.server.registry_sync import RegistrySynchronizer, ReloadRetryOptions
from signeo_mcp.server.session_manager import MCP_SESSION_ID_HEADER, SessionManager, StreamableHTTPASGIApp
from signeo_mcp.server.settings import Settings
from signeo_mcp.server.store import InMemoryToolStore, SQLiteToolStore, ToolStore
from signeo_mcp.server.tools import ToolManager
from signeo_mcp.server.utilities.logging import configure_logging, get_logger
from signeo_mcp.shared._httpx_utils import HttpClientFactory, create_http_client
from signeo_mcp.shared.exceptions import RegistryLoadFailureError
from signeo_mcp.signeo.client import SigneoClient
from signeo_mcp.signeo.tools import build_signeo_tools

logger = get_logger(__name__)


def create_store(settings: Settings) -> ToolStore:
    if settings.database_path:
        return SQLiteToolStore(settings.database_path)
    logger.warning("No database configured; tool descriptions are kept in memory only")
    return InMemoryToolStore()


class SigneoMCP:
    """The Signeo MCP server.

    Every service is constructed here once and passed by reference: the tool
    store, the registry mirroring it, the credential relay, the shared Server
    façade and the session manager.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: ToolStore | None = None,
        credentials: CredentialRelay | None = None,
        http_client_factory: HttpClientFactory = create_http_client,
    ):
        self.settings = settings or Settings()
        self.store = store if store is not None else create_store(self.settings)
        self.registry = ToolRegistry(self.store)
        self.credentials = credentials or create_credential_relay(self.settings.credential_scope)
        self.client = SigneoClient(
            self.settings.app_base_url,
            self.settings.sys_base_url,
            timeout=self.settings.downstream_timeout,
            http_client_factory=http_client_factory,
        )
        self.descriptors = build_signeo_tools(self.client, self.registry)
        self.server = Server(
            self.settings.server_name,
            self.settings.server_version,
            tool_manager=ToolManager(self.credentials),
        )
        self.session_manager = SessionManager(
            self.server,
            idle_timeout=self.settings.session_idle_timeout,
            reap_interval=self.settings.session_reap_interval,
        )
        self.synchronizer = RegistrySynchronizer(
            self.registry,
            self.store,
            self.server,
            self.descriptors,
            retry=ReloadRetryOptions(
                initial_delay=self.settings.reload_initial_delay,
                max_delay=self.settings.reload_max_delay,
                max_attempts=self.settings.reload_max_attempts,
            ),
            refresh_interval=self.settings.registry_refresh_interval,
            on_descriptions_changed=lambda _names: self.session_manager.notify_tools_changed(),
        )

    async def start(self) -> None:
        """Load the registry and bind the tools. Called once before serving."""
        try:
            await self.registry.reload()
        except RegistryLoadFailureError:
            # Serve the built-in descriptions; the synchroniser retries.
            logger.exception("Initial registry load failed")
            self.synchronizer.request_reload()
        self.server.bind_all(self.descriptors)

    @contextlib.asynccontextmanager
    async def lifespan(self, app: Starlette | None = None) -> AsyncIterator[None]:
        await self.start()
        async with self.session_manager.run(), self.synchronizer.run():
            yield

    def streamable_http_app(self) -> Starlette:
        """Return the Starlette app serving the MCP endpoint, the admin API and the health check."""
        routes = [
            Route(self.settings.streamable_http_path, endpoint=StreamableHTTPASGIApp(self.session_manager)),
            Mount(self.settings.api_path, routes=create_admin_routes(self.store)),
            Route("/health", endpoint=health, methods=["GET"]),
        ]
        middleware = [
            Middleware(
                CORSMiddleware,
                allow_origins=self.settings.cors_origins,
                allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
                allow_headers=["*"],
                expose_headers=[MCP_SESSION_ID_HEADER],
            )
        ]
        return Starlette(
            debug=self.settings.debug,
            routes=routes,
            middleware=middleware,
            lifespan=self.lifespan,
        )

    async def run_streamable_http_async(self) -> None:
        """Run the server using StreamableHTTP transport."""
        import uvicorn

        starlette_app = self.streamable_http_app()

        config = uvicorn.Config(
            starlette_app,
            host=self.settings.host,
            port=self.settings.port,
            log_level=self.settings.log_level.lower(),
        )
        server = uvicorn.Server(config)
        await server.serve()

    def run(self) -> None:
        configure_logging(self.settings.log_level)
        anyio.run(self.run_streamable_http_async)
