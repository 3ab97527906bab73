"""Admin HTTP routes for editing tool descriptions, plus the health check."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import BaseRoute, Route

from signeo_mcp.server.store import ToolRecord, ToolStore
from signeo_mcp.server.utilities.logging import get_logger

logger = get_logger(__name__)


def _serialize(record: ToolRecord) -> dict[str, Any]:
    return record.model_dump(mode="json")


def create_admin_routes(store: ToolStore) -> list[BaseRoute]:
    """Routes mounted under the API prefix. Saving a tool notifies the registry through the store."""

    async def list_tools(request: Request) -> JSONResponse:
        try:
            records = await store.list_all()
        except Exception:
            logger.exception("Error fetching tools")
            return JSONResponse({"error": "Failed to fetch tools"}, status_code=500)
        return JSONResponse({"tools": [_serialize(record) for record in records]})

    async def save_tool(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)
        if not isinstance(body, dict):
            return JSONResponse({"error": "Request body must be a JSON object"}, status_code=400)

        name = body.get("name")
        description = body.get("description")
        if name is None or description is None or name == "" or description == "":
            return JSONResponse({"error": "Both name and description are required"}, status_code=400)
        if not isinstance(name, str) or not isinstance(description, str):
            return JSONResponse({"error": "Name and description must be strings"}, status_code=400)
        name, description = name.strip(), description.strip()
        if not name or not description:
            return JSONResponse({"error": "Both name and description are required"}, status_code=400)

        try:
            record = await store.upsert(name, description)
        except Exception:
            logger.exception("Error saving tool %s", name)
            return JSONResponse({"error": "Failed to save tool"}, status_code=500)
        return JSONResponse({"message": "Tool saved successfully", "tool": _serialize(record)})

    async def delete_tool(request: Request) -> JSONResponse:
        name = request.path_params["name"]
        try:
            deleted = await store.delete(name)
        except Exception:
            logger.exception("Error deleting tool %s", name)
            return JSONResponse({"error": "Failed to delete tool"}, status_code=500)
        if not deleted:
            return JSONResponse({"error": "Tool not found"}, status_code=404)
        return JSONResponse({"message": "Tool deleted successfully"})

    return [
        Route("/tool", endpoint=list_tools, methods=["GET"]),
        Route("/tool", endpoint=save_tool, methods=["POST"]),
        Route("/tool/{name}", endpoint=delete_tool, methods=["DELETE"]),
    ]


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()})
