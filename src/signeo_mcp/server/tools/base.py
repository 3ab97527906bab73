from __future__ import annotations as _annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from functools import cached_property
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from signeo_mcp.shared.exceptions import InvalidArgumentsError
from signeo_mcp.types import CallToolResult, Tool as ToolInfo

DescriptionProvider = Callable[[str], str | None]


@dataclass(frozen=True)
class ToolContext:
    """Per-call context handed to a tool handler.

    ``credential`` is the relay value read when the call started.
    """

    session_id: str | None
    credential: str | None = None


ToolHandler = Callable[[Any, ToolContext], Awaitable[CallToolResult]]


class ToolDescriptor(BaseModel):
    """Static definition of one invocable tool."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(description="Name of the tool")
    arguments_model: type[BaseModel] = Field(description="Pydantic model validating the tool arguments")
    default_description: str = Field(description="Description used when the registry has none")
    handler: ToolHandler = Field(exclude=True)
    description_provider: DescriptionProvider | None = Field(default=None, exclude=True)
    issues_credential: bool = Field(
        default=False,
        description="Whether a successful result carries a downstream session token for the credential relay",
    )
    credential_key: str = "session_id"

    @cached_property
    def input_schema(self) -> dict[str, Any]:
        return self.arguments_model.model_json_schema(by_alias=True)

    def current_description(self) -> str:
        """Registry text for this tool, falling back to the built-in default."""
        if self.description_provider is not None:
            description = self.description_provider(self.name)
            if description:
                return description
        return self.default_description

    def validate_arguments(self, arguments: dict[str, Any] | None) -> BaseModel:
        try:
            return self.arguments_model.model_validate(arguments or {})
        except ValidationError as e:
            raise InvalidArgumentsError(self.name, e.errors(include_url=False)) from e

    def extract_credential(self, result: CallToolResult) -> str | None:
        if not self.issues_credential or result.isError or not result.structuredContent:
            return None
        token = result.structuredContent.get(self.credential_key)
        return token if isinstance(token, str) and token else None


class ToolHandle:
    """Bound, updatable view of a descriptor.

    Only the advertised description changes after binding; the name, the
    schema and the handler stay those of the descriptor.
    """

    def __init__(self, descriptor: ToolDescriptor, description: str | None = None):
        self.descriptor = descriptor
        self._description = description if description is not None else descriptor.current_description()

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def description(self) -> str:
        return self._description

    def update_description(self, description: str) -> bool:
        changed = description != self._description
        self._description = description
        return changed

    def to_tool(self) -> ToolInfo:
        return ToolInfo(name=self.name, description=self._description, inputSchema=self.descriptor.input_schema)
