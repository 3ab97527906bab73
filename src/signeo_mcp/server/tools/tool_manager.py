from __future__ import annotations as _annotations

from collections.abc import Iterable
from typing import Any

from signeo_mcp.server.credentials import CredentialRelay
from signeo_mcp.server.tools.base import ToolContext, ToolDescriptor, ToolHandle
from signeo_mcp.server.utilities.logging import get_logger, redact_sensitive_data
from signeo_mcp.shared.exceptions import ToolError
from signeo_mcp.types import CallToolResult, TextContent

logger = get_logger(__name__)


class ToolManager:
    """Holds the bound tool handles and dispatches tool calls."""

    def __init__(self, credentials: CredentialRelay):
        self.credentials = credentials
        self._handles: dict[str, ToolHandle] = {}

    def bind(self, descriptors: Iterable[ToolDescriptor]) -> None:
        handles: dict[str, ToolHandle] = {}
        issuer: str | None = None
        for descriptor in descriptors:
            if descriptor.name in handles:
                raise ValueError(f"Duplicate tool name: {descriptor.name}")
            if descriptor.issues_credential:
                if issuer is not None:
                    raise ValueError(f"Only one credential-issuing tool is allowed, got {issuer} and {descriptor.name}")
                issuer = descriptor.name
            handles[descriptor.name] = ToolHandle(descriptor)
        self._handles = handles

    def get_handle(self, name: str) -> ToolHandle | None:
        return self._handles.get(name)

    def list_handles(self) -> list[ToolHandle]:
        return list(self._handles.values())

    def update_description(self, name: str, description: str) -> bool:
        handle = self._handles.get(name)
        if handle is None:
            raise KeyError(name)
        return handle.update_description(description)

    async def call_tool(
        self,
        name: str,
        arguments: dict[str, Any] | None,
        session_id: str | None = None,
    ) -> CallToolResult:
        """Validate arguments, run the handler and relay any issued credential.

        Tool errors are returned as results with ``isError`` set; they never
        propagate to the caller.
        """
        handle = self._handles.get(name)
        if handle is None:
            return _make_error_result(f"Unknown tool: {name}")
        descriptor = handle.descriptor

        try:
            parsed = descriptor.validate_arguments(arguments)
        except ToolError as e:
            logger.info("Rejected call to %s: %s", name, e)
            return e.to_result()

        logger.debug("Calling tool %s with %s", name, redact_sensitive_data(arguments))
        context = ToolContext(session_id=session_id, credential=self.credentials.get(session_id))
        try:
            result = await descriptor.handler(parsed, context)
        except ToolError as e:
            logger.warning("Tool %s failed: %s", name, e)
            return e.to_result()
        except Exception as e:
            logger.exception("Error executing tool %s", name)
            return _make_error_result(f"Error executing tool {name}: {e}")

        token = descriptor.extract_credential(result)
        if token is not None:
            self.credentials.store(session_id, token)
            logger.info("Stored downstream credential issued by %s", name)
        return result


def _make_error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(text=message)], isError=True)
