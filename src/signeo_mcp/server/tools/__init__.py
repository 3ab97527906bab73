from .base import ToolContext, ToolDescriptor, ToolHandle
from .tool_manager import ToolManager

__all__ = ["ToolContext", "ToolDescriptor", "ToolHandle", "ToolManager"]
