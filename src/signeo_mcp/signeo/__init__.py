from .client import SigneoClient
from .tools import build_signeo_tools

__all__ = ["SigneoClient", "build_signeo_tools"]
