"""Credential relays carry the token obtained by ``login`` into later tool calls."""

from abc import ABC, abstractmethod

from signeo_mcp.server.utilities.logging import get_logger

logger = get_logger(__name__)


class CredentialRelay(ABC):
    """Holds downstream session tokens for tool handlers.

    ``store`` is called by the dispatch layer after a successful
    credential-issuing tool; every other tool reads the value with ``get`` at
    call time.
    """

    @abstractmethod
    def get(self, session_id: str | None) -> str | None:
        """Return the token visible to ``session_id``, if any."""

    @abstractmethod
    def store(self, session_id: str | None, token: str) -> None:
        """Record ``token`` as obtained by ``session_id``."""

    def discard(self, session_id: str) -> None:  # noqa: B027
        """Forget anything held for a session that has closed."""


class SharedCredentialRelay(CredentialRelay):
    """A single process-wide slot; the most recent login wins for every session."""

    def __init__(self) -> None:
        self._token: str | None = None

    def get(self, session_id: str | None) -> str | None:
        return self._token

    def store(self, session_id: str | None, token: str) -> None:
        if self._token is not None and self._token != token:
            logger.info("Replacing shared downstream credential (login from session %s)", session_id)
        self._token = token


class SessionCredentialRelay(CredentialRelay):
    """One slot per MCP session; a session only sees tokens it obtained itself."""

    def __init__(self) -> None:
        self._tokens: dict[str, str] = {}

    def get(self, session_id: str | None) -> str | None:
        if session_id is None:
            return None
        return self._tokens.get(session_id)

    def store(self, session_id: str | None, token: str) -> None:
        if session_id is None:
            logger.warning("Dropping credential obtained outside of a session")
            return
        self._tokens[session_id] = token

    def discard(self, session_id: str) -> None:
        self._tokens.pop(session_id, None)


def create_credential_relay(scope: str) -> CredentialRelay:
    if scope == "shared":
        return SharedCredentialRelay()
    if scope == "session":
        return SessionCredentialRelay()
    raise ValueError(f"Unknown credential scope: {scope}")
