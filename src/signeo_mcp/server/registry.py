"""ToolRegistry - in-memory cache of tool descriptions mirrored from the store."""

from collections.abc import Mapping
from types import MappingProxyType

from signeo_mcp.server.store import ToolStore
from signeo_mcp.server.utilities.logging import get_logger
from signeo_mcp.shared.exceptions import RegistryLoadFailureError

logger = get_logger(__name__)


class ToolRegistry:
    """Maps tool name to description text.

    The table is only ever replaced as a whole: ``reload`` builds a new
    read-only mapping and swaps the reference, so readers see either the old
    complete table or the new one. An absent name means "use the tool's
    built-in default description".
    """

    def __init__(self, store: ToolStore):
        self._store = store
        self._table: Mapping[str, str] = MappingProxyType({})
        self._loaded = False

    @property
    def loaded(self) -> bool:
        """Whether at least one reload has succeeded."""
        return self._loaded

    async def reload(self) -> None:
        """Replace the table with the store's current contents.

        Raises:
            RegistryLoadFailureError: the store could not be read. The previous
                table is kept.
        """
        try:
            records = await self._store.list_all()
        except Exception as e:
            raise RegistryLoadFailureError(f"Failed to load tool descriptions: {e}") from e

        self._table = MappingProxyType({record.name: record.description for record in records})
        self._loaded = True
        logger.info("Loaded %d tool description(s)", len(self._table))

    def describe(self, name: str) -> str | None:
        return self._table.get(name)

    def snapshot(self) -> Mapping[str, str]:
        return self._table

    def __contains__(self, name: object) -> bool:
        return name in self._table

    def __len__(self) -> int:
        return len(self._table)
