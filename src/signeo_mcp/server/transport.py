"""
Per-session transport state.

A SessionTransport is owned by exactly one MCP session. It serialises the
session's requests onto the shared Server façade and holds the optional
server-to-client notification stream.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import anyio
from anyio.streams.memory import MemoryObjectReceiveStream, MemoryObjectSendStream

from signeo_mcp import types
from signeo_mcp.server.lowlevel.server import Server
from signeo_mcp.server.utilities.logging import get_logger
from signeo_mcp.shared.exceptions import SessionNotFoundError

logger = get_logger(__name__)

NOTIFICATION_BUFFER_SIZE = 16

IncomingMessage = types.JSONRPCRequest | types.JSONRPCNotification | types.JSONRPCResponse | types.JSONRPCError


class SessionTransport:
    """Transport state for one session.

    Requests are processed one at a time in arrival order; the request lock is
    held across the handler, so a slow downstream call only delays later
    requests of the same session. Closing is allowed at any time: an
    in-flight request still runs to completion, but its result is dropped and
    the caller gets ``SessionNotFoundError``.
    """

    def __init__(
        self,
        session_id: str,
        server: Server,
        *,
        on_close: Callable[[str], None] | None = None,
    ):
        self.session_id = session_id
        self.server = server
        self.created_at = time.time()
        self.last_activity = time.monotonic()
        self.protocol_version: str | None = None
        self.client_info: dict[str, Any] | None = None
        self._on_close = on_close
        self._request_lock = anyio.Lock()
        self._in_flight = 0
        self._closed = False
        self._stream: MemoryObjectSendStream[types.JSONRPCNotification] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def busy(self) -> bool:
        return self._in_flight > 0

    @property
    def streaming(self) -> bool:
        return self._stream is not None

    def touch(self) -> None:
        self.last_activity = time.monotonic()

    def idle_for(self, now: float | None = None) -> float:
        return (time.monotonic() if now is None else now) - self.last_activity

    async def initialize(self, request: types.JSONRPCRequest) -> types.JSONRPCResponse:
        result = self.server.initialize(request.params)
        self.protocol_version = result.protocolVersion
        self.client_info = (request.params or {}).get("clientInfo")
        logger.debug("Session %s negotiated protocol %s", self.session_id, self.protocol_version)
        return types.JSONRPCResponse(
            jsonrpc="2.0",
            id=request.id,
            result=result.model_dump(by_alias=True, exclude_none=True, mode="json"),
        )

    async def handle_message(self, message: IncomingMessage) -> types.JSONRPCResponse | types.JSONRPCError | None:
        """Run one message through the server.

        Returns the JSON-RPC response for requests and None for anything else.
        """
        if self._closed:
            raise SessionNotFoundError(self.session_id)

        self._in_flight += 1
        try:
            async with self._request_lock:
                if self._closed:
                    raise SessionNotFoundError(self.session_id)
                self.touch()
                response = await self._dispatch(message)
        finally:
            self._in_flight -= 1
            self.touch()

        if self._closed:
            logger.debug("Session %s closed while handling a message; discarding result", self.session_id)
            # The handler may have stored per-session state after close released it.
            self.server.session_closed(self.session_id)
            raise SessionNotFoundError(self.session_id)
        return response

    async def _dispatch(self, message: IncomingMessage) -> types.JSONRPCResponse | types.JSONRPCError | None:
        if isinstance(message, types.JSONRPCRequest):
            return await self.server.handle_request(message, self.session_id)
        if isinstance(message, types.JSONRPCNotification):
            await self.server.handle_notification(message, self.session_id)
            return None
        # The server never issues requests of its own, so client responses have nothing to match.
        logger.debug("Ignoring unsolicited client response on session %s", self.session_id)
        return None

    def open_stream(self) -> MemoryObjectReceiveStream[types.JSONRPCNotification]:
        """Attach the server-to-client notification stream (one per session)."""
        if self._closed:
            raise SessionNotFoundError(self.session_id)
        if self._stream is not None:
            raise RuntimeError(f"Session {self.session_id} already has a notification stream")
        send_stream, receive_stream = anyio.create_memory_object_stream[types.JSONRPCNotification](
            NOTIFICATION_BUFFER_SIZE
        )
        self._stream = send_stream
        self.touch()
        return receive_stream

    def detach_stream(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        self.touch()

    def send_notification(self, notification: types.JSONRPCNotification) -> bool:
        if self._stream is None:
            return False
        try:
            self._stream.send_nowait(notification)
        except anyio.WouldBlock:
            logger.warning("Notification buffer full for session %s; dropping %s", self.session_id, notification.method)
            return False
        except (anyio.ClosedResourceError, anyio.BrokenResourceError):
            self._stream = None
            return False
        return True

    def close(self) -> None:
        """Close the transport. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._stream is not None:
            self._stream.close()
            self._stream = None
        callback, self._on_close = self._on_close, None
        if callback is not None:
            callback(self.session_id)
        logger.debug("Closed transport for session %s", self.session_id)
