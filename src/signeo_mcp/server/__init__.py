from .app import SigneoMCP
from .settings import Settings

__all__ = ["SigneoMCP", "Settings"]
