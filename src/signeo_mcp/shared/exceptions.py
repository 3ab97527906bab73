"""Error taxonomy for the Signeo MCP server.

Protocol errors (``BadRequest``, ``SessionNotFound``) are returned to the
client as JSON-RPC errors. Tool errors (``InvalidArguments``,
``DownstreamFailure``) are returned as ordinary tool results with
``isError`` set. ``RegistryLoadFailure`` is only ever reported to the
operator.
"""

from typing import Any, ClassVar

from signeo_mcp.types import (
    BAD_REQUEST,
    SESSION_NOT_FOUND,
    CallToolResult,
    ErrorData,
    TextContent,
)


class McpError(Exception):
    """Exception carrying a JSON-RPC error for the offending request.

    Attributes:
        error: The ErrorData sent back to the client.
        status_code: HTTP status used when the error is returned over HTTP.
    """

    error: ErrorData
    kind: ClassVar[str] = "ProtocolError"
    status_code: ClassVar[int] = 400

    def __init__(self, error: ErrorData):
        super().__init__(error.message)
        self.error = error


class BadRequestError(McpError):
    """Malformed session bootstrap: wrong mix of session ID and message shape."""

    kind = "BadRequest"
    status_code = 400

    def __init__(self, message: str = "Bad Request: No valid session ID provided"):
        super().__init__(ErrorData(code=BAD_REQUEST, message=message))


class SessionNotFoundError(McpError):
    """The message references a session ID with no live mapping."""

    kind = "SessionNotFound"
    status_code = 404

    def __init__(self, session_id: str | None = None):
        super().__init__(ErrorData(code=SESSION_NOT_FOUND, message="Session not found"))
        self.session_id = session_id


class ToolError(Exception):
    """Error in tool operations, surfaced to the client as an error result."""

    kind: ClassVar[str] = "ToolError"

    def details(self) -> dict[str, Any]:
        return {}

    def to_result(self) -> CallToolResult:
        return CallToolResult(
            content=[TextContent(text=str(self))],
            structuredContent={"error": self.kind, **self.details()},
            isError=True,
        )


class InvalidArgumentsError(ToolError):
    """A tool invocation's arguments failed schema validation."""

    kind = "InvalidArguments"

    def __init__(self, tool_name: str, errors: list[dict[str, Any]] | None = None):
        self.tool_name = tool_name
        self.errors = errors or []
        summary = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ())) or '<root>'}: {error.get('msg', 'invalid')}"
            for error in self.errors
        )
        message = f"Invalid arguments for tool {tool_name}"
        super().__init__(f"{message}: {summary}" if summary else message)

    def details(self) -> dict[str, Any]:
        return {
            "details": [
                {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
                for error in self.errors
            ]
        }


class DownstreamFailureError(ToolError):
    """An outbound call returned a non-success status or no usable payload."""

    kind = "DownstreamFailure"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status

    def details(self) -> dict[str, Any]:
        return {"status": self.status}


class RegistryLoadFailureError(Exception):
    """The tool store could not be read during a registry reload."""

    kind: ClassVar[str] = "RegistryLoadFailure"
