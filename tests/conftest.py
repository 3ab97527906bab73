from typing import Any

import anyio
import httpx
import pytest
import sse_starlette
from packaging import version

from signeo_mcp.server.settings import Settings
from signeo_mcp.server.store import InMemoryToolStore

APP_BASE_URL = "https://app.signeo.test"
SYS_BASE_URL = "https://sys.signeo.test"


@pytest.fixture
def anyio_backend():
    return "asyncio"


SSE_STARLETTE_VERSION = version.parse(sse_starlette.__version__)
NEEDS_RESET = SSE_STARLETTE_VERSION < version.parse("3.0.0")


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """Reset sse-starlette's global AppStatus event for versions before 3.0.0.

    Older sse-starlette releases bind a module-level event to the first event
    loop that touches it.
    """
    if not NEEDS_RESET:
        yield
        return

    from sse_starlette.sse import AppStatus

    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]
    yield
    AppStatus.should_exit_event = anyio.Event()  # type: ignore[attr-defined]


class FakeSigneo:
    """Stands in for the Signeo back ends and records every request it receives.

    Set ``gate`` to an anyio.Event to hold downstream calls until it is set;
    ``entered`` is set as soon as a call arrives.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.session_id: str | None = "sigsid-1"
        self.status_code = 200
        self.gate: anyio.Event | None = None
        self.entered: anyio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.entered is not None:
            self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.status_code >= 400:
            return httpx.Response(self.status_code, text="rejected")
        if request.url.path == "/public/auth/login":
            payload: dict[str, Any] = {"session_id": self.session_id} if self.session_id else {}
            return httpx.Response(200, json=payload)
        return httpx.Response(200, text=f"<ok path={request.url.path}>")

    def client_factory(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), **kwargs)

    def cookies(self) -> list[str | None]:
        return [request.headers.get("cookie") for request in self.requests]


@pytest.fixture
def fake_signeo() -> FakeSigneo:
    return FakeSigneo()


@pytest.fixture
def store() -> InMemoryToolStore:
    return InMemoryToolStore()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        app_base_url=APP_BASE_URL,
        sys_base_url=SYS_BASE_URL,
        session_idle_timeout=None,
        reload_initial_delay=0.01,
        reload_max_delay=0.05,
        reload_max_attempts=3,
        _env_file=None,  # type: ignore[call-arg]
    )
