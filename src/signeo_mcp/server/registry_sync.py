"""Keeps the bound tool descriptions in step with the tool store."""

from __future__ import annotations

import contextlib
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass

import anyio

from signeo_mcp.server.lowlevel.server import Server
from signeo_mcp.server.registry import ToolRegistry
from signeo_mcp.server.store import ToolChangeEvent, ToolStore
from signeo_mcp.server.tools import ToolDescriptor
from signeo_mcp.server.utilities.logging import get_logger
from signeo_mcp.shared.exceptions import RegistryLoadFailureError

logger = get_logger(__name__)


@dataclass
class ReloadRetryOptions:
    """Backoff policy for registry reloads.

    Attributes:
        initial_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for the delay between retries.
        grow_factor: Factor by which the delay grows after each failure.
        max_attempts: Attempts per trigger before giving up until the next one.
    """

    initial_delay: float = 0.5
    max_delay: float = 30.0
    grow_factor: float = 2.0
    max_attempts: int = 5

    def __post_init__(self) -> None:
        if self.initial_delay > self.max_delay:
            raise ValueError("initial_delay cannot exceed max_delay")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay(self, attempt: int) -> float:
        return min(self.initial_delay * (self.grow_factor**attempt), self.max_delay)


class RegistrySynchronizer:
    """Reloads the registry when the store changes and pushes new descriptions into the server.

    Store notifications only set a flag; a single worker task performs the
    reloads, so a burst of edits results in at most one extra reload.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        store: ToolStore,
        server: Server,
        descriptors: Sequence[ToolDescriptor],
        *,
        retry: ReloadRetryOptions | None = None,
        refresh_interval: float | None = None,
        on_descriptions_changed: Callable[[list[str]], object] | None = None,
    ):
        self.registry = registry
        self.store = store
        self.server = server
        self.descriptors = list(descriptors)
        self.retry = retry or ReloadRetryOptions()
        self.refresh_interval = refresh_interval
        self.on_descriptions_changed = on_descriptions_changed
        self._pending = anyio.Event()

    @contextlib.asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        unsubscribe = self.store.subscribe(self._on_store_change)
        try:
            async with anyio.create_task_group() as tg:
                tg.start_soon(self._worker)
                try:
                    yield
                finally:
                    tg.cancel_scope.cancel()
        finally:
            unsubscribe()

    def _on_store_change(self, event: ToolChangeEvent) -> None:
        logger.debug("Tool %s %s; scheduling registry reload", event.record.name, event.kind)
        self.request_reload()

    def request_reload(self) -> None:
        self._pending.set()

    async def _worker(self) -> None:
        while True:
            with anyio.move_on_after(self.refresh_interval):
                await self._pending.wait()
            self._pending = anyio.Event()
            await self.sync_once()

    async def sync_once(self) -> list[str]:
        """Reload the registry (with retries) and apply descriptions. Returns the changed tool names."""
        if not await self.reload_with_backoff():
            return []
        changed = self.apply_descriptions()
        if changed and self.on_descriptions_changed is not None:
            try:
                self.on_descriptions_changed(changed)
            except Exception:
                logger.exception("Failed to announce changed tool descriptions")
        return changed

    async def reload_with_backoff(self) -> bool:
        for attempt in range(self.retry.max_attempts):
            try:
                await self.registry.reload()
                return True
            except RegistryLoadFailureError as e:
                if attempt + 1 >= self.retry.max_attempts:
                    logger.error(
                        "Registry reload failed after %d attempt(s), keeping previous descriptions: %s",
                        self.retry.max_attempts,
                        e,
                    )
                    return False
                delay = self.retry.delay(attempt)
                logger.warning(
                    "Registry reload failed, retrying in %.1fs (attempt %d/%d): %s",
                    delay,
                    attempt + 1,
                    self.retry.max_attempts,
                    e,
                )
                await anyio.sleep(delay)
        return False

    def apply_descriptions(self) -> list[str]:
        changed: list[str] = []
        for descriptor in self.descriptors:
            try:
                if self.server.update_description(descriptor.name, descriptor.current_description()):
                    changed.append(descriptor.name)
            except Exception:
                logger.exception("Failed to update description of tool %s", descriptor.name)
        return changed
