"""HTTP client for the Signeo application and system back ends."""

from __future__ import annotations

from typing import Any

import httpx

from signeo_mcp.server.utilities.logging import get_logger
from signeo_mcp.shared._httpx_utils import HttpClientFactory, create_http_client
from signeo_mcp.shared.exceptions import DownstreamFailureError

logger = get_logger(__name__)

SESSION_COOKIE = "SIGSID"

FormFields = list[tuple[str, str]]


class SigneoClient:
    """Issues the outbound calls behind the Signeo tools.

    Every call is a single POST. The downstream session token, when known,
    travels as the ``SIGSID`` cookie. Non-success statuses, transport errors
    and unusable payloads raise ``DownstreamFailureError``.
    """

    def __init__(
        self,
        app_base_url: str,
        sys_base_url: str,
        *,
        timeout: float = 30.0,
        http_client_factory: HttpClientFactory = create_http_client,
    ):
        self.app_base_url = app_base_url.rstrip("/")
        self.sys_base_url = sys_base_url.rstrip("/")
        self.timeout = timeout
        self._http_client_factory = http_client_factory

    async def login(self, username: str, password: str) -> str:
        """Authenticate and return the downstream session token."""
        response = await self._post(
            f"{self.app_base_url}/public/auth/login",
            credential=None,
            failure="Login failed",
            json={"userName": username, "userPassword": password},
        )
        if not response.is_success:
            raise DownstreamFailureError(
                f"Login failed: {response.reason_phrase or response.status_code}", status=response.status_code
            )
        try:
            payload = response.json()
        except ValueError as e:
            raise DownstreamFailureError("Login failed: response was not JSON.", status=response.status_code) from e
        session_id = payload.get("session_id") if isinstance(payload, dict) else None
        if not isinstance(session_id, str) or not session_id:
            raise DownstreamFailureError("Login failed: no session_id returned.", status=response.status_code)
        return session_id

    async def create_entity_type(self, credential: str | None, *, tpc: str, name: str, id: str) -> str:
        response = await self._post(
            f"{self.sys_base_url}/entity_taxonomy.php",
            credential=credential,
            failure="Failed to create taxonomy entity type",
            data={
                "action": "newEntityType",
                "type": "taxonomy",
                "parent": "",
                "is_block": "0",
                "name": name,
                "id": id,
                "from_tree": "",
                "from_entity_type_var": "Select",
                "tpc": tpc,
            },
        )
        self._raise_for_status(response, f"Failed to create taxonomy entity type. HTTP {response.status_code}")
        return response.text

    async def get_taxonomy_tree(self, credential: str | None, *, tpc: str, entity_type_var: str) -> str:
        response = await self._post(
            f"{self.sys_base_url}/entity_type.php",
            credential=credential,
            failure="Failed to fetch taxonomy tree",
            params={"action": "getEntityTreeAjax", "entity_type_var": entity_type_var},
            fields=[("tpc", tpc)],
        )
        self._raise_for_status(response, f"Failed to fetch taxonomy tree. HTTP status: {response.status_code}")
        return response.text

    async def set_entity_properties(
        self, credential: str | None, *, tpc: str, id: str, name: str, entity_type_var: str
    ) -> str:
        response = await self._post(
            f"{self.sys_base_url}/entity_type.php",
            credential=credential,
            failure="Failed to set entity properties",
            fields=[
                ("action", "setEproperties"),
                ("is_parent", "1"),
                ("solr_link", ""),
                ("es_settings[id]", id),
                ("es_settings[name]", name),
                ("es_settings[entity_type_var]", entity_type_var),
                ("es_settings[hide_general_fields]", "1"),
                ("es_settings[use_taxonomy_as_catalog]", "1"),
                ("es_settings[container_related_type]", "entity_var"),
                ("es_settings[group_id]", "0"),
                ("tpc", tpc),
            ],
        )
        self._raise_for_status(response, f"Failed to set entity properties. HTTP status: {response.status_code}")
        return response.text

    async def create_taxonomy_node(
        self,
        credential: str | None,
        *,
        tpc: str,
        entity_type_var: str,
        node_type_var: str,
        parent: str,
        lang_id: str,
        title: str,
        uri: str = "",
        entity_tree_parent: str = "",
    ) -> str:
        response = await self._post(
            f"{self.sys_base_url}/entity_taxonomy.php",
            credential=credential,
            failure="Failed to create taxonomy node",
            params={
                "action": "NewTaxonomyNode",
                "entity_type_var": entity_type_var,
                "entity_tree_parent": entity_tree_parent,
                "node_type_var": node_type_var,
                "parent": parent,
                "lang_id": lang_id,
                "title": title,
                "uri": uri,
            },
            fields=[("tpc", tpc)],
        )
        self._raise_for_status(response, f"Failed to create taxonomy node. HTTP status: {response.status_code}")
        return response.text

    async def _post(
        self,
        url: str,
        *,
        credential: str | None,
        failure: str,
        params: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        fields: FormFields | None = None,
        json: Any = None,
    ) -> httpx.Response:
        headers = {"Cookie": f"{SESSION_COOKIE}={credential}"} if credential else {}
        # httpx only switches to multipart/form-data when files are present
        files = [(key, (None, value)) for key, value in fields] if fields is not None else None
        logger.debug("POST %s (authenticated=%s)", url, bool(credential))
        try:
            async with self._http_client_factory(timeout=httpx.Timeout(self.timeout)) as client:
                return await client.post(url, params=params, data=data, files=files, json=json, headers=headers)
        except httpx.HTTPError as e:
            raise DownstreamFailureError(f"{failure}: {e}") from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, message: str) -> None:
        if not response.is_success:
            raise DownstreamFailureError(message, status=response.status_code)
