"""JSON-RPC and MCP protocol types used by the server."""

from typing import Annotated, Any, Final, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, RootModel

LATEST_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS: Final[tuple[str, ...]] = (
    "2024-11-05",
    "2025-03-26",
    LATEST_PROTOCOL_VERSION,
)

# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

# Transport-level error codes used by streamable HTTP
BAD_REQUEST = -32000
SESSION_NOT_FOUND = -32001

RequestId: TypeAlias = Annotated[int, Field(strict=True)] | str


class ErrorData(BaseModel):
    """Error information for JSON-RPC error responses."""

    code: int
    message: str
    data: Any | None = None

    model_config = ConfigDict(extra="allow")


class JSONRPCRequest(BaseModel):
    """A request that expects a response."""

    jsonrpc: Literal["2.0"]
    id: RequestId
    method: str
    params: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class JSONRPCNotification(BaseModel):
    """A notification which does not expect a response."""

    jsonrpc: Literal["2.0"]
    method: str
    params: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class JSONRPCResponse(BaseModel):
    """A successful (non-error) response to a request."""

    jsonrpc: Literal["2.0"]
    id: RequestId
    result: dict[str, Any]

    model_config = ConfigDict(extra="allow")


class JSONRPCError(BaseModel):
    """A response to a request that indicates an error occurred."""

    jsonrpc: Literal["2.0"]
    id: RequestId | None
    error: ErrorData

    model_config = ConfigDict(extra="allow")


class JSONRPCMessage(RootModel[JSONRPCRequest | JSONRPCNotification | JSONRPCResponse | JSONRPCError]):
    pass


class Implementation(BaseModel):
    """Describes the name and version of an MCP implementation."""

    name: str
    version: str
    title: str | None = None

    model_config = ConfigDict(extra="allow")


class ToolsCapability(BaseModel):
    listChanged: bool | None = None

    model_config = ConfigDict(extra="allow")


class ServerCapabilities(BaseModel):
    tools: ToolsCapability | None = None

    model_config = ConfigDict(extra="allow")


class InitializeResult(BaseModel):
    """After receiving an initialize request from the client, the server sends this response."""

    protocolVersion: str
    capabilities: ServerCapabilities
    serverInfo: Implementation
    instructions: str | None = None


class TextContent(BaseModel):
    """Text content for a message."""

    type: Literal["text"] = "text"
    text: str

    model_config = ConfigDict(extra="allow")


class Tool(BaseModel):
    """Definition for a tool the client can call."""

    name: str
    description: str | None = None
    inputSchema: dict[str, Any]

    model_config = ConfigDict(extra="allow")


class ListToolsResult(BaseModel):
    tools: list[Tool]


class CallToolRequestParams(BaseModel):
    name: str
    arguments: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")


class CallToolResult(BaseModel):
    """The server's response to a tool call."""

    content: list[TextContent]
    structuredContent: dict[str, Any] | None = None
    isError: bool = False


TOOLS_LIST_CHANGED: Final = "notifications/tools/list_changed"
INITIALIZED: Final = "notifications/initialized"
CANCELLED: Final = "notifications/cancelled"


def is_initialize_request(message: JSONRPCMessage | JSONRPCRequest | JSONRPCNotification | Any) -> bool:
    """Return True when the message is an ``initialize`` request."""
    if isinstance(message, JSONRPCMessage):
        message = message.root
    return isinstance(message, JSONRPCRequest) and message.method == "initialize"
