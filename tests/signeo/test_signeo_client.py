import json
from urllib.parse import parse_qs

import httpx
import pytest

from signeo_mcp.shared.exceptions import DownstreamFailureError
from signeo_mcp.signeo.client import SigneoClient

APP = "https://app.signeo.test"
SYS = "https://sys.signeo.test"


def make_client(fake_signeo) -> SigneoClient:
    return SigneoClient(APP, SYS + "/", http_client_factory=fake_signeo.client_factory)


class TestLogin:
    @pytest.mark.anyio
    async def test_posts_credentials_as_json(self, fake_signeo):
        token = await make_client(fake_signeo).login("alice", "s3cret")

        assert token == "sigsid-1"
        [request] = fake_signeo.requests
        assert str(request.url) == f"{APP}/public/auth/login"
        assert request.method == "POST"
        assert json.loads(request.content) == {"userName": "alice", "userPassword": "s3cret"}
        assert "cookie" not in request.headers

    @pytest.mark.anyio
    async def test_missing_session_id(self, fake_signeo):
        fake_signeo.session_id = None
        with pytest.raises(DownstreamFailureError, match="no session_id returned") as exc_info:
            await make_client(fake_signeo).login("alice", "s3cret")
        assert exc_info.value.status == 200

    @pytest.mark.anyio
    async def test_rejected_login(self, fake_signeo):
        fake_signeo.status_code = 403
        with pytest.raises(DownstreamFailureError, match="Login failed: Forbidden") as exc_info:
            await make_client(fake_signeo).login("alice", "wrong")
        assert exc_info.value.status == 403

    @pytest.mark.anyio
    async def test_non_json_payload(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>maintenance</html>")

        client = SigneoClient(
            APP, SYS, http_client_factory=lambda **kwargs: httpx.AsyncClient(transport=httpx.MockTransport(handler), **kwargs)
        )
        with pytest.raises(DownstreamFailureError, match="not JSON"):
            await client.login("alice", "s3cret")


class TestTaxonomyCalls:
    @pytest.mark.anyio
    async def test_create_entity_type_is_urlencoded(self, fake_signeo):
        body = await make_client(fake_signeo).create_entity_type("T", tpc="tpc-1", name="Catalogue", id="cat")

        assert body == "<ok path=/entity_taxonomy.php>"
        [request] = fake_signeo.requests
        assert str(request.url) == f"{SYS}/entity_taxonomy.php"
        assert request.headers["cookie"] == "SIGSID=T"
        assert request.headers["content-type"] == "application/x-www-form-urlencoded"
        form = {key: values[0] for key, values in parse_qs(request.content.decode(), keep_blank_values=True).items()}
        assert form == {
            "action": "newEntityType",
            "type": "taxonomy",
            "parent": "",
            "is_block": "0",
            "name": "Catalogue",
            "id": "cat",
            "from_tree": "",
            "from_entity_type_var": "Select",
            "tpc": "tpc-1",
        }

    @pytest.mark.anyio
    async def test_get_taxonomy_tree_sends_multipart_tpc(self, fake_signeo):
        await make_client(fake_signeo).get_taxonomy_tree("T", tpc="tpc-1", entity_type_var="tax catalogue")

        [request] = fake_signeo.requests
        assert request.url.path == "/entity_type.php"
        assert request.url.params["action"] == "getEntityTreeAjax"
        assert request.url.params["entity_type_var"] == "tax catalogue"
        assert request.headers["content-type"].startswith("multipart/form-data")
        content = request.read()
        assert b'name="tpc"' in content
        assert b"tpc-1" in content

    @pytest.mark.anyio
    async def test_set_entity_properties_fields(self, fake_signeo):
        await make_client(fake_signeo).set_entity_properties(
            "T", tpc="tpc-1", id="cat", name="Catalogue", entity_type_var="tax_catalogue"
        )

        [request] = fake_signeo.requests
        content = request.read()
        for field in (
            b'name="action"',
            b"setEproperties",
            b'name="es_settings[id]"',
            b'name="es_settings[entity_type_var]"',
            b'name="es_settings[container_related_type]"',
            b"entity_var",
            b'name="solr_link"',
        ):
            assert field in content

    @pytest.mark.anyio
    async def test_create_taxonomy_node_query(self, fake_signeo):
        await make_client(fake_signeo).create_taxonomy_node(
            None,
            tpc="tpc-1",
            entity_type_var="tax_catalogue",
            node_type_var="tax_catalogue333",
            parent="tax_catalogue",
            lang_id="1",
            title="נעליים",
        )

        [request] = fake_signeo.requests
        assert "cookie" not in request.headers
        assert dict(request.url.params) == {
            "action": "NewTaxonomyNode",
            "entity_type_var": "tax_catalogue",
            "entity_tree_parent": "",
            "node_type_var": "tax_catalogue333",
            "parent": "tax_catalogue",
            "lang_id": "1",
            "title": "נעליים",
            "uri": "",
        }

    @pytest.mark.anyio
    async def test_failure_status(self, fake_signeo):
        fake_signeo.status_code = 500
        with pytest.raises(DownstreamFailureError) as exc_info:
            await make_client(fake_signeo).get_taxonomy_tree("T", tpc="tpc-1", entity_type_var="x")
        assert str(exc_info.value) == "Failed to fetch taxonomy tree. HTTP status: 500"
        assert exc_info.value.status == 500

    @pytest.mark.anyio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = SigneoClient(
            APP, SYS, http_client_factory=lambda **kwargs: httpx.AsyncClient(transport=httpx.MockTransport(handler), **kwargs)
        )
        with pytest.raises(DownstreamFailureError, match="Failed to create taxonomy entity type: connection refused") as exc_info:
            await client.create_entity_type("T", tpc="t", name="n", id="i")
        assert exc_info.value.status is None
