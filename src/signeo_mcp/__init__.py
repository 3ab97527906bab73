from .server import SigneoMCP, Settings
from .shared.exceptions import (
    BadRequestError,
    DownstreamFailureError,
    InvalidArgumentsError,
    McpError,
    RegistryLoadFailureError,
    SessionNotFoundError,
    ToolError,
)

__all__ = [
    "BadRequestError",
    "DownstreamFailureError",
    "InvalidArgumentsError",
    "McpError",
    "RegistryLoadFailureError",
    "SessionNotFoundError",
    "SigneoMCP",
    "Settings",
    "ToolError",
]
