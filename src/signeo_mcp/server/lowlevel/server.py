"""
Server façade shared by every MCP session.

The server holds the bound tool handles and answers protocol requests for
whichever session forwards them. Tools are bound once, after the first
registry load; afterwards only their advertised descriptions change:

    server = Server("signeo-mcp-server", "1.0.0", tool_manager=ToolManager(relay))
    server.bind_all(descriptors)
    server.update_description("login", "Custom text")
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from pydantic import ValidationError

from signeo_mcp import types
from signeo_mcp.server.tools import ToolDescriptor, ToolManager
from signeo_mcp.server.utilities.logging import get_logger
from signeo_mcp.shared.exceptions import McpError

logger = get_logger(__name__)

RequestHandler = Callable[[dict[str, Any], "str | None"], Awaitable[dict[str, Any]]]


class Server:
    def __init__(
        self,
        name: str,
        version: str | None = None,
        *,
        tool_manager: ToolManager,
        instructions: str | None = None,
    ):
        self.name = name
        self.version = version
        self.instructions = instructions
        self.tool_manager = tool_manager
        self._bound = False
        self.request_handlers: dict[str, RequestHandler] = {
            "ping": self._handle_ping,
            "tools/list": self._handle_list_tools,
            "tools/call": self._handle_call_tool,
        }
        logger.debug("Initializing server %r", name)

    @property
    def bound(self) -> bool:
        return self._bound

    def bind_all(self, descriptors: Iterable[ToolDescriptor]) -> None:
        """Bind the tool set. Allowed exactly once per server."""
        if self._bound:
            raise RuntimeError("Tools have already been bound to this server")
        self.tool_manager.bind(descriptors)
        self._bound = True
        logger.info("Bound %d tool(s)", len(self.tool_manager.list_handles()))

    def update_description(self, tool_name: str, description: str) -> bool:
        """Rewrite the advertised description of a bound tool.

        Returns True when the text changed. Raises KeyError for an unknown tool.
        """
        changed = self.tool_manager.update_description(tool_name, description)
        if changed:
            logger.info("Updated description of tool %s", tool_name)
        return changed

    def list_tools(self) -> list[types.Tool]:
        return [handle.to_tool() for handle in self.tool_manager.list_handles()]

    async def call_tool(
        self, name: str, arguments: dict[str, Any] | None, session_id: str | None = None
    ) -> types.CallToolResult:
        return await self.tool_manager.call_tool(name, arguments, session_id)

    def get_capabilities(self) -> types.ServerCapabilities:
        return types.ServerCapabilities(tools=types.ToolsCapability(listChanged=True))

    def initialize(self, params: dict[str, Any] | None) -> types.InitializeResult:
        requested = (params or {}).get("protocolVersion")
        if requested in types.SUPPORTED_PROTOCOL_VERSIONS:
            protocol_version = requested
        else:
            protocol_version = types.LATEST_PROTOCOL_VERSION
        return types.InitializeResult(
            protocolVersion=protocol_version,
            capabilities=self.get_capabilities(),
            serverInfo=types.Implementation(name=self.name, version=self.version or "0.0.0"),
            instructions=self.instructions,
        )

    async def handle_request(
        self, request: types.JSONRPCRequest, session_id: str | None = None
    ) -> types.JSONRPCResponse | types.JSONRPCError:
        logger.debug("Processing request %s (%s)", request.method, request.id)
        handler = self.request_handlers.get(request.method)
        if handler is None:
            return _error_response(request.id, types.ErrorData(code=types.METHOD_NOT_FOUND, message="Method not found"))

        try:
            result = await handler(request.params or {}, session_id)
        except McpError as err:
            return _error_response(request.id, err.error)
        except Exception as err:
            logger.exception("Error handling %s", request.method)
            return _error_response(request.id, types.ErrorData(code=types.INTERNAL_ERROR, message=str(err)))
        return types.JSONRPCResponse(jsonrpc="2.0", id=request.id, result=result)

    async def handle_notification(self, notification: types.JSONRPCNotification, session_id: str | None = None) -> None:
        if notification.method == types.INITIALIZED:
            logger.debug("Session %s finished initialization", session_id)
        elif notification.method == types.CANCELLED:
            logger.debug("Session %s cancelled request %s", session_id, (notification.params or {}).get("requestId"))
        else:
            logger.debug("Ignoring notification %s", notification.method)

    def session_closed(self, session_id: str) -> None:
        self.tool_manager.credentials.discard(session_id)

    async def _handle_ping(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        return {}

    async def _handle_list_tools(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        result = types.ListToolsResult(tools=self.list_tools())
        return result.model_dump(by_alias=True, exclude_none=True, mode="json")

    async def _handle_call_tool(self, params: dict[str, Any], session_id: str | None) -> dict[str, Any]:
        try:
            call = types.CallToolRequestParams.model_validate(params)
        except ValidationError as e:
            raise McpError(types.ErrorData(code=types.INVALID_PARAMS, message=f"Invalid tools/call params: {e}"))
        result = await self.call_tool(call.name, call.arguments, session_id)
        return result.model_dump(by_alias=True, exclude_none=True, mode="json")


def _error_response(request_id: types.RequestId, error: types.ErrorData) -> types.JSONRPCError:
    return types.JSONRPCError(jsonrpc="2.0", id=request_id, error=error)
