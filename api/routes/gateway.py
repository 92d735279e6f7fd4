"""REST gateway: one endpoint per MCP operation, mounted at /gateway.

Every handler except /health authenticates the X-Api-Key header before
anything else, including reading the body. Gateway errors are turned into
plain-text responses by the handler that ``create_app`` registers, carrying
each error's own status code.
"""

from datetime import datetime, timezone
from typing import Any, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ValidationError

from api.deps import Services, get_services, require_user
from api.schemas import PromptGetRequest, ResourceReadRequest, ToolCallRequest
from hub.integrations import listing
from hub.models import User

router = APIRouter()

BodyT = TypeVar("BodyT", bound=BaseModel)


async def parse_body(request: Request, model: type[BodyT]) -> BodyT:
    """Decode and validate the JSON body once the caller is authenticated."""
    try:
        payload = await request.json()
    except ValueError as exc:
        raise RequestValidationError(
            [{"type": "json_invalid", "loc": ("body",), "msg": "JSON decode error", "input": None}]
        ) from exc
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc


@router.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/tools/list")
async def tools_list(
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return {"tools": await listing.list_tools(services.store, user.id)}


@router.post("/tools/call")
async def tools_call(
    request: Request,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> Response:
    """Invoke a namespaced tool; the integration's body is returned as-is."""
    body = await parse_body(request, ToolCallRequest)
    result = await services.invoker.invoke(user.id, body.name, body.arguments, request.headers)
    if result.raw_body is not None:
        return Response(content=result.raw_body, media_type=result.content_type)
    return JSONResponse(content=result.data)


@router.get("/resources/list")
async def resources_list(
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return {"resources": await listing.list_resources(services.store, user.id)}


@router.post("/resources/read")
async def resources_read(
    request: Request,
    user: User = Depends(require_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    body = await parse_body(request, ResourceReadRequest)
    return await listing.read_resource(services.store, user.id, body.uri)


@router.get("/prompts/list")
async def prompts_list(user: User = Depends(require_user)) -> dict[str, Any]:
    return {"prompts": listing.list_prompts()}


@router.post("/prompts/get")
async def prompts_get(request: Request, user: User = Depends(require_user)) -> dict[str, Any]:
    body = await parse_body(request, PromptGetRequest)
    return listing.get_prompt(body.name)
