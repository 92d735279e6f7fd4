"""
MCP Hub JSON-RPC 2.0 Dispatcher.

Speaks the Model Context Protocol subset agents need:
- initialize / initialized handshake, ping
- tools/list, tools/call, resources/list, prompts/list
- Batches (processed concurrently, answered in input order)
- Notifications (no ``id`` member) are handled but never answered

Protocol failures stay inside the envelope: an unauthenticated tools/call is
an error object with code -32000, not an HTTP 401.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Awaitable, Callable, Mapping, Optional
import asyncio
import json
import logging

from hub.errors import GatewayError, RateLimited, UpstreamError
from hub.integrations import listing
from hub.integrations.invoker import IntegrationInvoker
from hub.models import User
from hub.store.ports import IntegrationCatalog

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "mcp-hub"
SERVER_VERSION = "1.0.0"


class ErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_ERROR = -32000


ERROR_MESSAGES = {
    ErrorCode.PARSE_ERROR: "Parse error",
    ErrorCode.INVALID_REQUEST: "Invalid Request",
    ErrorCode.METHOD_NOT_FOUND: "Method not found",
    ErrorCode.INVALID_PARAMS: "Invalid params",
    ErrorCode.INTERNAL_ERROR: "Internal error",
}


class JsonRpcError(Exception):
    def __init__(self, code: int, message: Optional[str] = None, data: Any = None):
        super().__init__(message)
        self.code = int(code)
        self.message = message or ERROR_MESSAGES.get(code, "Server error")
        self.data = data


def success_response(request_id: Any, result: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "result": result, "id": request_id}


def error_response(
    request_id: Any,
    code: int,
    message: Optional[str] = None,
    data: Any = None,
) -> dict[str, Any]:
    error: dict[str, Any] = {"code": int(code), "message": message or ERROR_MESSAGES.get(code, "Server error")}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": JSONRPC_VERSION, "error": error, "id": request_id}


def parse_error_response() -> dict[str, Any]:
    return error_response(None, ErrorCode.PARSE_ERROR)


def _valid_id(value: Any) -> bool:
    return value is None or (isinstance(value, (str, int, float)) and not isinstance(value, bool))


@dataclass
class CallContext:
    user: Optional[User]
    headers: Mapping[str, str] = field(default_factory=dict)

    def require_user(self) -> User:
        if self.user is None:
            raise JsonRpcError(ErrorCode.SERVER_ERROR, "Authentication required")
        return self.user


Handler = Callable[[dict[str, Any], CallContext], Awaitable[Any]]


class McpDispatcher:
    """Routes JSON-RPC messages to MCP method handlers."""

    def __init__(self, invoker: IntegrationInvoker, catalog: IntegrationCatalog):
        self._invoker = invoker
        self._catalog = catalog
        self._methods: dict[str, Handler] = {
            "initialize": self._initialize,
            "initialized": self._acknowledge,
            "ping": self._acknowledge,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "resources/list": self._resources_list,
            "prompts/list": self._prompts_list,
        }

    async def handle(self, payload: Any, context: CallContext) -> Optional[Any]:
        """Process a single message or a batch. None means nothing to send."""
        if isinstance(payload, list):
            if not payload:
                return error_response(None, ErrorCode.INVALID_REQUEST)
            responses = await asyncio.gather(*(self.process(m, context) for m in payload))
            answered = [r for r in responses if r is not None]
            return answered or None
        return await self.process(payload, context)

    async def process(self, message: Any, context: CallContext) -> Optional[dict[str, Any]]:
        """Handle one message. Returns None for notifications."""
        if not isinstance(message, dict):
            return error_response(None, ErrorCode.INVALID_REQUEST)

        is_notification = "id" not in message
        request_id = message.get("id")
        if not _valid_id(request_id):
            return error_response(None, ErrorCode.INVALID_REQUEST)
        method = message.get("method")
        if message.get("jsonrpc") != JSONRPC_VERSION or not isinstance(method, str):
            return error_response(request_id, ErrorCode.INVALID_REQUEST)

        params = message.get("params")
        try:
            handler = self._methods.get(method)
            if handler is None:
                raise JsonRpcError(ErrorCode.METHOD_NOT_FOUND)
            if params is not None and not isinstance(params, (dict, list)):
                raise JsonRpcError(ErrorCode.INVALID_PARAMS)
            result = await handler(params if isinstance(params, dict) else {}, context)
            response = success_response(request_id, result)
        except JsonRpcError as exc:
            response = error_response(request_id, exc.code, exc.message, exc.data)
        except GatewayError as exc:
            response = error_response(request_id, exc.jsonrpc_code, exc.message, self._error_data(exc))
        except Exception:
            logger.exception("Error processing MCP request %s", method)
            response = error_response(request_id, ErrorCode.INTERNAL_ERROR)

        if is_notification:
            if "error" in response:
                logger.info("Notification %s failed: %s", method, response["error"]["message"])
            return None
        return response

    @staticmethod
    def _error_data(exc: GatewayError) -> Optional[dict[str, Any]]:
        if isinstance(exc, RateLimited):
            return {"status": exc.status_code, "rateLimitType": exc.rate_limit_type}
        if isinstance(exc, UpstreamError):
            return {"status": exc.status_code}
        return None

    # --- Handlers ---

    async def _initialize(self, params: dict[str, Any], context: CallContext) -> dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}, "resources": {}, "prompts": {}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        }

    async def _acknowledge(self, params: dict[str, Any], context: CallContext) -> dict[str, Any]:
        return {}

    async def _tools_list(self, params: dict[str, Any], context: CallContext) -> dict[str, Any]:
        user = context.require_user()
        return {"tools": await listing.list_tools(self._catalog, user.id)}

    async def _tools_call(self, params: dict[str, Any], context: CallContext) -> dict[str, Any]:
        user = context.require_user()
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise JsonRpcError(ErrorCode.INVALID_PARAMS)

        result = await self._invoker.invoke(user.id, name, params.get("arguments"), context.headers)
        data = result.data
        text = data if isinstance(data, str) else json.dumps(data, indent=2)
        return {"content": [{"type": "text", "text": text}]}

    async def _resources_list(self, params: dict[str, Any], context: CallContext) -> dict[str, Any]:
        user = context.require_user()
        return {"resources": await listing.list_resources(self._catalog, user.id)}

    async def _prompts_list(self, params: dict[str, Any], context: CallContext) -> dict[str, Any]:
        return {"prompts": listing.list_prompts()}
