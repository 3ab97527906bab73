"""Tests for SessionManager session lifecycle and per-session ordering."""

import anyio
import pytest
from pydantic import BaseModel

from signeo_mcp import types
from signeo_mcp.server.credentials import SessionCredentialRelay, SharedCredentialRelay
from signeo_mcp.server.lowlevel import Server
from signeo_mcp.server.session_manager import SessionManager
from signeo_mcp.server.tools import ToolContext, ToolDescriptor, ToolManager
from signeo_mcp.shared.exceptions import BadRequestError, SessionNotFoundError


class StepArguments(BaseModel):
    label: str
    wait: bool = False


class Recorder:
    """Tool backend that records call order and can hold calls until released."""

    def __init__(self) -> None:
        self.started: list[str] = []
        self.finished: list[str] = []
        self.entered = anyio.Event()
        self.release = anyio.Event()

    async def step(self, arguments: StepArguments, context: ToolContext) -> types.CallToolResult:
        self.started.append(arguments.label)
        if arguments.wait:
            self.entered.set()
            await self.release.wait()
        self.finished.append(arguments.label)
        return types.CallToolResult(content=[types.TextContent(text=arguments.label)])


def make_manager(recorder: Recorder, **kwargs) -> SessionManager:
    server = Server("test", "1.0.0", tool_manager=ToolManager(SharedCredentialRelay()))
    server.bind_all(
        [ToolDescriptor(name="step", arguments_model=StepArguments, default_description="Step", handler=recorder.step)]
    )
    return SessionManager(server, **kwargs)


def initialize_request(id: int = 1) -> types.JSONRPCRequest:
    return types.JSONRPCRequest(
        jsonrpc="2.0",
        id=id,
        method="initialize",
        params={"protocolVersion": types.LATEST_PROTOCOL_VERSION, "capabilities": {}},
    )


def step_request(label: str, *, wait: bool = False, id: int = 2) -> types.JSONRPCRequest:
    return types.JSONRPCRequest(
        jsonrpc="2.0",
        id=id,
        method="tools/call",
        params={"name": "step", "arguments": {"label": label, "wait": wait}},
    )


PING = types.JSONRPCRequest(jsonrpc="2.0", id=99, method="ping")


class TestInitialize:
    @pytest.mark.anyio
    async def test_session_ids_are_unique(self):
        manager = make_manager(Recorder())

        results = [await manager.handle_initialize(initialize_request(i)) for i in range(50)]

        ids = [session_id for session_id, _, _ in results]
        assert len(set(ids)) == 50
        assert sorted(manager.session_ids) == sorted(ids)
        for session_id, transport, response in results:
            assert manager.get_session(session_id) is transport
            assert transport.session_id == session_id
            assert response.result["protocolVersion"] == types.LATEST_PROTOCOL_VERSION

    @pytest.mark.anyio
    async def test_initialize_with_session_id_is_bad_request(self):
        manager = make_manager(Recorder())
        with pytest.raises(BadRequestError) as exc_info:
            await manager.handle_initialize(initialize_request(), session_id="abc")
        assert exc_info.value.kind == "BadRequest"
        assert len(manager) == 0

    @pytest.mark.anyio
    async def test_non_initialize_without_session_is_bad_request(self):
        manager = make_manager(Recorder())
        with pytest.raises(BadRequestError, match="No valid session ID provided"):
            await manager.handle_initialize(PING)
        assert len(manager) == 0

    @pytest.mark.anyio
    async def test_initialize_notification_is_bad_request(self):
        manager = make_manager(Recorder())
        notification = types.JSONRPCNotification(jsonrpc="2.0", method="initialize")
        with pytest.raises(BadRequestError):
            await manager.handle_initialize(notification)
        assert len(manager) == 0


class TestHandleMessage:
    @pytest.mark.anyio
    async def test_unknown_session_is_not_created(self):
        manager = make_manager(Recorder())
        with pytest.raises(SessionNotFoundError):
            await manager.handle_message("deadbeef", PING)
        assert len(manager) == 0

    @pytest.mark.anyio
    async def test_initialize_on_existing_session_is_bad_request(self):
        manager = make_manager(Recorder())
        session_id, _, _ = await manager.handle_initialize(initialize_request())
        with pytest.raises(BadRequestError):
            await manager.handle_message(session_id, initialize_request(2))
        # The session stays usable.
        response = await manager.handle_message(session_id, PING)
        assert isinstance(response, types.JSONRPCResponse)

    @pytest.mark.anyio
    async def test_routes_to_session(self):
        recorder = Recorder()
        manager = make_manager(recorder)
        session_id, _, _ = await manager.handle_initialize(initialize_request())

        response = await manager.handle_message(session_id, step_request("a"))

        assert isinstance(response, types.JSONRPCResponse)
        assert response.result["content"][0]["text"] == "a"

    @pytest.mark.anyio
    async def test_notification_has_no_response(self):
        manager = make_manager(Recorder())
        session_id, _, _ = await manager.handle_initialize(initialize_request())
        notification = types.JSONRPCNotification(jsonrpc="2.0", method=types.INITIALIZED)
        assert await manager.handle_message(session_id, notification) is None


class TestCloseSession:
    @pytest.mark.anyio
    async def test_close_is_idempotent(self):
        manager = make_manager(Recorder())
        session_id, transport, _ = await manager.handle_initialize(initialize_request())

        manager.close_session(session_id)
        manager.close_session(session_id)
        manager.close_session("never-existed")

        assert transport.closed
        assert manager.get_session(session_id) is None
        with pytest.raises(SessionNotFoundError):
            await manager.handle_message(session_id, PING)

    @pytest.mark.anyio
    async def test_close_during_in_flight_call_discards_result(self):
        recorder = Recorder()
        manager = make_manager(recorder)
        session_id, _, _ = await manager.handle_initialize(initialize_request())
        outcome: list[BaseException] = []

        async def call() -> None:
            try:
                await manager.handle_message(session_id, step_request("slow", wait=True))
            except SessionNotFoundError as e:
                outcome.append(e)

        async with anyio.create_task_group() as tg:
            tg.start_soon(call)
            await recorder.entered.wait()
            manager.close_session(session_id)
            recorder.release.set()

        # The handler ran to completion but its result was dropped.
        assert recorder.finished == ["slow"]
        assert len(outcome) == 1
        assert len(manager) == 0

    @pytest.mark.anyio
    async def test_login_finishing_after_close_leaves_no_session_token(self):
        relay = SessionCredentialRelay()
        release = anyio.Event()
        entered = anyio.Event()

        async def login(arguments: StepArguments, context: ToolContext) -> types.CallToolResult:
            entered.set()
            await release.wait()
            return types.CallToolResult(content=[], structuredContent={"session_id": "downstream-token"})

        server = Server("test", "1.0.0", tool_manager=ToolManager(relay))
        server.bind_all(
            [
                ToolDescriptor(
                    name="login",
                    arguments_model=StepArguments,
                    default_description="Login",
                    handler=login,
                    issues_credential=True,
                )
            ]
        )
        manager = SessionManager(server)
        session_id, _, _ = await manager.handle_initialize(initialize_request())
        request = types.JSONRPCRequest(
            jsonrpc="2.0", id=2, method="tools/call", params={"name": "login", "arguments": {"label": "x"}}
        )

        async def call() -> None:
            with pytest.raises(SessionNotFoundError):
                await manager.handle_message(session_id, request)

        async with anyio.create_task_group() as tg:
            tg.start_soon(call)
            await entered.wait()
            manager.close_session(session_id)
            release.set()

        assert relay.get(session_id) is None
        assert session_id not in relay._tokens


class TestConcurrency:
    @pytest.mark.anyio
    async def test_slow_session_does_not_block_other_sessions(self):
        recorder = Recorder()
        manager = make_manager(recorder)
        session_a, _, _ = await manager.handle_initialize(initialize_request())
        session_b, _, _ = await manager.handle_initialize(initialize_request())

        async with anyio.create_task_group() as tg:
            tg.start_soon(manager.handle_message, session_a, step_request("a-slow", wait=True))
            await recorder.entered.wait()

            with anyio.fail_after(2):
                response = await manager.handle_message(session_b, step_request("b-fast"))

            assert isinstance(response, types.JSONRPCResponse)
            assert recorder.finished == ["b-fast"]
            recorder.release.set()

        assert recorder.finished == ["b-fast", "a-slow"]

    @pytest.mark.anyio
    async def test_requests_on_one_session_run_in_arrival_order(self):
        recorder = Recorder()
        manager = make_manager(recorder)
        session_id, transport, _ = await manager.handle_initialize(initialize_request())

        async with anyio.create_task_group() as tg:
            tg.start_soon(manager.handle_message, session_id, step_request("first", wait=True, id=1))
            await recorder.entered.wait()
            for index, label in enumerate(["second", "third", "fourth"], start=2):
                tg.start_soon(manager.handle_message, session_id, step_request(label, id=index))
                await anyio.sleep(0.01)

            # Everything queued behind the blocked first request.
            assert recorder.started == ["first"]
            assert transport.busy
            recorder.release.set()

        assert recorder.finished == ["first", "second", "third", "fourth"]
        assert not transport.busy


class TestIdleReaping:
    @pytest.mark.anyio
    async def test_idle_sessions_are_reaped(self):
        manager = make_manager(Recorder(), idle_timeout=60)
        idle_id, idle, _ = await manager.handle_initialize(initialize_request())
        fresh_id, fresh, _ = await manager.handle_initialize(initialize_request())
        idle.last_activity -= 120

        reaped = manager.reap_idle_sessions()

        assert reaped == [idle_id]
        assert idle.closed
        assert manager.session_ids == [fresh_id]
        assert not fresh.closed

    @pytest.mark.anyio
    async def test_busy_and_streaming_sessions_are_kept(self):
        recorder = Recorder()
        manager = make_manager(recorder, idle_timeout=60)
        busy_id, busy, _ = await manager.handle_initialize(initialize_request())
        streaming_id, streaming, _ = await manager.handle_initialize(initialize_request())
        receive_stream = streaming.open_stream()

        async with anyio.create_task_group() as tg:
            tg.start_soon(manager.handle_message, busy_id, step_request("slow", wait=True))
            await recorder.entered.wait()
            busy.last_activity -= 120
            streaming.last_activity -= 120

            assert manager.reap_idle_sessions() == []
            recorder.release.set()

        assert sorted(manager.session_ids) == sorted([busy_id, streaming_id])
        receive_stream.close()

    @pytest.mark.anyio
    async def test_reaping_disabled(self):
        manager = make_manager(Recorder(), idle_timeout=None)
        _, transport, _ = await manager.handle_initialize(initialize_request())
        transport.last_activity -= 10_000
        assert manager.reap_idle_sessions() == []

    @pytest.mark.anyio
    async def test_background_reaper(self):
        manager = make_manager(Recorder(), idle_timeout=0.05, reap_interval=0.01)
        async with manager.run():
            session_id, _, _ = await manager.handle_initialize(initialize_request())
            with anyio.fail_after(2):
                while manager.get_session(session_id) is not None:
                    await anyio.sleep(0.01)


class TestRun:
    @pytest.mark.anyio
    async def test_run_can_only_be_called_once(self):
        manager = make_manager(Recorder())
        async with manager.run():
            pass
        with pytest.raises(RuntimeError, match="only be called once"):
            async with manager.run():
                pass

    @pytest.mark.anyio
    async def test_shutdown_closes_sessions(self):
        manager = make_manager(Recorder())
        async with manager.run():
            _, transport, _ = await manager.handle_initialize(initialize_request())
        assert transport.closed
        assert len(manager) == 0


class TestBroadcast:
    @pytest.mark.anyio
    async def test_tools_changed_reaches_open_streams_only(self):
        manager = make_manager(Recorder())
        _, listening, _ = await manager.handle_initialize(initialize_request())
        await manager.handle_initialize(initialize_request())
        receive_stream = listening.open_stream()

        assert manager.notify_tools_changed() == 1

        notification = receive_stream.receive_nowait()
        assert notification.method == types.TOOLS_LIST_CHANGED
        receive_stream.close()
