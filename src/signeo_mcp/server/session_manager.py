"""Session manager and streamable HTTP endpoint for the Signeo MCP server."""

from __future__ import annotations

import contextlib
import json
from collections.abc import AsyncIterator
from http import HTTPStatus
from typing import Any
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup
from pydantic import ValidationError
from sse_starlette import EventSourceResponse
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Receive, Scope, Send

from signeo_mcp import types
from signeo_mcp.server.lowlevel.server import Server
from signeo_mcp.server.transport import IncomingMessage, SessionTransport
from signeo_mcp.server.utilities.logging import get_logger
from signeo_mcp.shared.exceptions import BadRequestError, McpError, SessionNotFoundError

logger = get_logger(__name__)

MCP_SESSION_ID_HEADER = "mcp-session-id"


class SessionManager:
    """
    Owns the table of live MCP sessions.

    A session is created only for an ``initialize`` request that carries no
    session ID, and it is bound to the shared Server. Every later message
    must carry the issued ID and is handled by that session's transport.
    Sessions end on DELETE, on idle timeout, or when the manager shuts
    down.

    Important: ``run()`` may be entered only once per instance. Create a new
    instance to restart.

    Args:
        app: The Server façade shared by every session
        idle_timeout: Seconds without activity before a session is reaped;
                      None disables reaping
        reap_interval: Seconds between idle checks
    """

    def __init__(
        self,
        app: Server,
        *,
        idle_timeout: float | None = 1800.0,
        reap_interval: float = 60.0,
    ):
        self.app = app
        self.idle_timeout = idle_timeout
        self.reap_interval = reap_interval

        self._session_creation_lock = anyio.Lock()
        self._sessions: dict[str, SessionTransport] = {}

        self._task_group: TaskGroup | None = None
        self._run_lock = anyio.Lock()
        self._has_started = False

    @property
    def session_ids(self) -> list[str]:
        return list(self._sessions)

    def get_session(self, session_id: str) -> SessionTransport | None:
        return self._sessions.get(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        """
        Run the session manager and its idle reaper.

        Use this in the lifespan of the Starlette app:

        @contextlib.asynccontextmanager
        async def lifespan(app: Starlette) -> AsyncIterator[None]:
            async with session_manager.run():
                yield
        """
        async with self._run_lock:
            if self._has_started:
                raise RuntimeError(
                    "SessionManager .run() can only be called once per instance. "
                    "Create a new instance if you need to run again."
                )
            self._has_started = True

        async with anyio.create_task_group() as tg:
            self._task_group = tg
            if self.idle_timeout is not None:
                tg.start_soon(self._reap_idle_sessions_forever)
            logger.info("Session manager started")
            try:
                yield
            finally:
                logger.info("Session manager shutting down")
                tg.cancel_scope.cancel()
                self._task_group = None
                for transport in list(self._sessions.values()):
                    transport.close()
                self._sessions.clear()

    async def handle_initialize(
        self, request: IncomingMessage, session_id: str | None = None
    ) -> tuple[str, SessionTransport, types.JSONRPCResponse]:
        """Create a session for an ``initialize`` request that carries no session ID."""
        if session_id is not None:
            raise BadRequestError("Bad Request: initialization request must not include a session ID")
        if not types.is_initialize_request(request) or not isinstance(request, types.JSONRPCRequest):
            raise BadRequestError()

        async with self._session_creation_lock:
            new_session_id = uuid4().hex
            while new_session_id in self._sessions:
                new_session_id = uuid4().hex
            transport = SessionTransport(new_session_id, self.app, on_close=self._deregister)
            self._sessions[new_session_id] = transport
            logger.info("Created new session %s", new_session_id)

        response = await transport.initialize(request)
        return new_session_id, transport, response

    async def handle_message(
        self, session_id: str, message: IncomingMessage
    ) -> types.JSONRPCResponse | types.JSONRPCError | None:
        """Route a message to its session's transport."""
        transport = self._sessions.get(session_id)
        if transport is None:
            raise SessionNotFoundError(session_id)
        if types.is_initialize_request(message):
            raise BadRequestError("Bad Request: session is already initialized")
        return await transport.handle_message(message)

    def close_session(self, session_id: str) -> None:
        """Close a session. Unknown or already-closed sessions are ignored."""
        transport = self._sessions.get(session_id)
        if transport is None:
            logger.debug("Close requested for unknown session %s", session_id)
            return
        transport.close()

    def _deregister(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self.app.session_closed(session_id)
        logger.info("Session %s closed", session_id)

    def broadcast(self, notification: types.JSONRPCNotification) -> int:
        """Send a notification to every session with an open stream. Returns the number reached."""
        delivered = 0
        for transport in list(self._sessions.values()):
            if transport.send_notification(notification):
                delivered += 1
        logger.debug("Broadcast %s to %d session(s)", notification.method, delivered)
        return delivered

    def notify_tools_changed(self) -> int:
        return self.broadcast(types.JSONRPCNotification(jsonrpc="2.0", method=types.TOOLS_LIST_CHANGED))

    def reap_idle_sessions(self, now: float | None = None) -> list[str]:
        """Close sessions idle for longer than ``idle_timeout``.

        Sessions with a request in flight or an open notification stream are
        never reaped.
        """
        if self.idle_timeout is None:
            return []
        expired = [
            session_id
            for session_id, transport in self._sessions.items()
            if not transport.busy and not transport.streaming and transport.idle_for(now) >= self.idle_timeout
        ]
        for session_id in expired:
            logger.info("Reaping idle session %s", session_id)
            self.close_session(session_id)
        return expired

    async def _reap_idle_sessions_forever(self) -> None:
        while True:
            await anyio.sleep(self.reap_interval)
            self.reap_idle_sessions()

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        """
        Process an ASGI request for the streamable HTTP endpoint.

        Args:
            scope: ASGI scope
            receive: ASGI receive function
            send: ASGI send function
        """
        if self._task_group is None:
            raise RuntimeError("Task group is not initialized. Make sure to use run().")

        request = Request(scope, receive)
        if request.method == "POST":
            response = await self._handle_post_request(request)
        elif request.method == "GET":
            await self._handle_get_request(request, scope, receive, send)
            return
        elif request.method == "DELETE":
            response = self._handle_delete_request(request)
        else:
            response = Response(
                "Method Not Allowed",
                status_code=HTTPStatus.METHOD_NOT_ALLOWED,
                headers={"Allow": "GET, POST, DELETE"},
            )
        await response(scope, receive, send)

    async def _handle_post_request(self, request: Request) -> Response:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER) or None

        try:
            body = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return _error_response(types.PARSE_ERROR, f"Parse error: {e}", HTTPStatus.BAD_REQUEST)
        if isinstance(body, list):
            return _error_response(types.INVALID_REQUEST, "Batch requests are not supported", HTTPStatus.BAD_REQUEST)
        try:
            message = types.JSONRPCMessage.model_validate(body).root
        except ValidationError as e:
            return _error_response(
                types.INVALID_REQUEST, f"Validation error: {e.error_count()} error(s)", HTTPStatus.BAD_REQUEST
            )

        request_id = message.id if isinstance(message, types.JSONRPCRequest) else None
        try:
            if session_id is None or types.is_initialize_request(message):
                new_session_id, _, response = await self.handle_initialize(message, session_id)
                return _json_response(response, headers={MCP_SESSION_ID_HEADER: new_session_id})
            result = await self.handle_message(session_id, message)
        except McpError as err:
            return _error_response(err.error.code, err.error.message, err.status_code, request_id=request_id)

        if result is None:
            return Response(status_code=HTTPStatus.ACCEPTED)
        return _json_response(result, headers={MCP_SESSION_ID_HEADER: session_id})

    async def _handle_get_request(self, request: Request, scope: Scope, receive: Receive, send: Send) -> None:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER) or None
        if session_id is None:
            response = _error_response(
                types.BAD_REQUEST, "Bad Request: Invalid or missing session ID", HTTPStatus.BAD_REQUEST
            )
            await response(scope, receive, send)
            return

        transport = self._sessions.get(session_id)
        if transport is None:
            err = SessionNotFoundError(session_id)
            await _error_response(err.error.code, err.error.message, err.status_code)(scope, receive, send)
            return
        if transport.streaming:
            response = _error_response(
                types.BAD_REQUEST, "Conflict: Only one notification stream is allowed per session", HTTPStatus.CONFLICT
            )
            await response(scope, receive, send)
            return

        receive_stream = transport.open_stream()

        async def event_publisher() -> AsyncIterator[dict[str, Any]]:
            try:
                async with receive_stream:
                    async for notification in receive_stream:
                        yield {
                            "event": "message",
                            "data": notification.model_dump_json(by_alias=True, exclude_none=True),
                        }
            finally:
                transport.detach_stream()

        logger.debug("Opened notification stream for session %s", session_id)
        await EventSourceResponse(event_publisher(), headers={MCP_SESSION_ID_HEADER: session_id})(
            scope, receive, send
        )

    def _handle_delete_request(self, request: Request) -> Response:
        session_id = request.headers.get(MCP_SESSION_ID_HEADER) or None
        if session_id is None:
            return _error_response(
                types.BAD_REQUEST, "Bad Request: Invalid or missing session ID", HTTPStatus.BAD_REQUEST
            )
        self.close_session(session_id)
        return Response(status_code=HTTPStatus.OK)


class StreamableHTTPASGIApp:
    """ASGI application for the streamable HTTP endpoint."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.session_manager.handle_request(scope, receive, send)


def _json_response(message: Any, headers: dict[str, str] | None = None) -> Response:
    return JSONResponse(
        message.model_dump(by_alias=True, exclude_none=True, mode="json"),
        headers=headers,
    )


def _error_response(
    code: int,
    message: str,
    status_code: int,
    *,
    request_id: types.RequestId | None = None,
) -> Response:
    error = types.JSONRPCError(jsonrpc="2.0", id=request_id, error=types.ErrorData(code=code, message=message))
    return JSONResponse(error.model_dump(by_alias=True, mode="json", exclude={"error": {"data"}}), status_code=status_code)
