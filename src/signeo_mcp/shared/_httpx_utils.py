"""Utilities for creating standardized httpx AsyncClient instances."""

from typing import Any, Protocol

import httpx

__all__ = ["HttpClientFactory", "create_http_client"]


class HttpClientFactory(Protocol):
    def __call__(self, **kwargs: Any) -> httpx.AsyncClient: ...


def create_http_client(**kwargs: Any) -> httpx.AsyncClient:
    """Create an httpx AsyncClient with the defaults used for downstream calls.

    - follow_redirects=True (always enabled)
    - Default timeout of 30 seconds if not specified

    Any keyword argument accepted by httpx.AsyncClient may be passed and
    overrides the defaults. The returned client must be used as an async
    context manager so its connections are released.

    Examples:
        async with create_http_client(base_url="https://sys.example.com") as client:
            response = await client.post("/entity_type.php", data={"tpc": "..."})
    """
    kwargs.setdefault("follow_redirects", True)
    kwargs.setdefault("timeout", httpx.Timeout(30.0))
    return httpx.AsyncClient(**kwargs)
