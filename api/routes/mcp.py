"""JSON-RPC 2.0 endpoint, mounted at /mcp.

The API key is optional at the HTTP layer: methods that need a user answer
with an in-envelope error instead of a 401, so MCP clients can still run
the initialize handshake before presenting credentials.
"""

import json

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from api.deps import Services, get_services
from hub.auth import API_KEY_HEADER, resolve_user
from hub.mcp.jsonrpc import CallContext, parse_error_response

router = APIRouter()


@router.post("")
async def mcp_endpoint(
    request: Request,
    services: Services = Depends(get_services),
) -> Response:
    raw = await request.body()
    try:
        payload = json.loads(raw)
    except ValueError:
        return JSONResponse(parse_error_response())

    user = await resolve_user(services.store, request.headers.get(API_KEY_HEADER))
    response = await services.dispatcher.handle(payload, CallContext(user=user, headers=request.headers))
    if response is None:
        # Only notifications: nothing to answer.
        return Response(status_code=204)
    return JSONResponse(response)
