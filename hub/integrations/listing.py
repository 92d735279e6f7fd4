"""Tool, resource and prompt listings shared by both front ends."""
from __future__ import annotations
from typing import Any
import re

from hub.errors import IntegrationDisabled, InvalidParams
from hub.integrations.namespace import qualify
from hub.store.ports import ConnectionStore, IntegrationCatalog

RESOURCE_URI_RE = re.compile(r"^(\w+)://")
RESOURCE_MIME_TYPE = "application/json"


async def list_tools(catalog: IntegrationCatalog, user_id: str) -> list[dict[str, Any]]:
    """Namespaced tools of every integration the user has enabled."""
    integrations = await catalog.list_user_integrations(user_id)
    return [
        {
            "name": qualify(integration.slug, tool.name),
            "description": tool.description,
            "inputSchema": tool.schema,
        }
        for integration in integrations
        for tool in integration.tools
    ]


async def list_resources(catalog: IntegrationCatalog, user_id: str) -> list[dict[str, Any]]:
    integrations = await catalog.list_user_integrations(user_id)
    return [
        {
            "uri": resource.uri_template,
            "name": f"{integration.slug} - {resource.description}",
            "description": resource.description,
            "mimeType": RESOURCE_MIME_TYPE,
        }
        for integration in integrations
        for resource in integration.resources
    ]


async def read_resource(
    connections: ConnectionStore, user_id: str, uri: str
) -> dict[str, Any]:
    """Resolve ``<slug>://…`` and check the connection. Content reads are not forwarded yet."""
    match = RESOURCE_URI_RE.match(uri or "")
    if not match:
        raise InvalidParams("Invalid resource URI format")
    slug = match.group(1)

    connection = await connections.get_user_connection(user_id, slug)
    if connection is None or not connection.enabled:
        raise IntegrationDisabled(slug)

    return {
        "contents": [
            {
                "uri": uri,
                "mimeType": RESOURCE_MIME_TYPE,
                "text": f"Resource read not yet implemented for {slug}",
            }
        ]
    }


def list_prompts() -> list[dict[str, Any]]:
    return []


def get_prompt(name: str) -> dict[str, Any]:
    return {"description": f"Prompt '{name}' not found", "messages": []}
