"""
MCP Hub Integration Invoker.

Executes one namespaced tool call end to end:
Resolve → Connection → Descriptor → Credential → Forward → Classify → Telemetry

The integration body is passed through opaque. Telemetry (one usage entry,
one anonymous analytics record) is handed to the emitter exactly once per
attempt and never delays or alters the outcome.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional
import logging
import time

import httpx

from hub.errors import (
    GatewayError,
    IntegrationDisabled,
    IntegrationNotFound,
    RateLimited,
    UpstreamError,
)
from hub.integrations.credential_vault import CredentialVault
from hub.integrations.namespace import ToolName, resolve
from hub.models import (
    AnalyticsRecord,
    IntegrationDescriptor,
    ToolResult,
    ToolStatus,
    UsageEntry,
)
from hub.observability.otel_setup import tool_call_span
from hub.store.ports import ConnectionStore, IntegrationCatalog
from hub.telemetry import anonymizer
from hub.telemetry.detection import CallPatterns, ExecutionInfo
from hub.telemetry.emitter import TelemetryEmitter

logger = logging.getLogger(__name__)

OAUTH_TOKEN_HEADER = "X-OAuth-Token"
RATE_LIMIT_TYPE_HEADER = "x-ratelimit-type"
DEFAULT_RATE_LIMIT_TYPE = "per_minute"


class IntegrationInvoker:
    """Forwards tool calls to integration endpoints on behalf of a user."""

    def __init__(
        self,
        catalog: IntegrationCatalog,
        connections: ConnectionStore,
        vault: CredentialVault,
        http_client: httpx.AsyncClient,
        telemetry: TelemetryEmitter,
        patterns: CallPatterns,
        base_url: str = "http://localhost:3000",
        timeout: float = 30.0,
        telemetry_salt: str = "",
        geo_header: str = "x-vercel-ip-country",
        clock: Callable[[], float] = time.time,
    ):
        self._catalog = catalog
        self._connections = connections
        self._vault = vault
        self._http = http_client
        self._telemetry = telemetry
        self._patterns = patterns
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._salt = telemetry_salt
        self._geo_header = geo_header
        self._clock = clock

    # --- Public ---

    async def invoke(
        self,
        user_id: str,
        tool_name: str,
        arguments: Any,
        headers: Mapping[str, str],
    ) -> ToolResult:
        name = resolve(tool_name)
        started_at = self._clock()
        started = time.perf_counter()
        session = anonymizer.session_hash(headers, self._salt)
        call_index = self._patterns.calls.next(session)
        execution = self._patterns.execution.detect(session)

        status = ToolStatus.ERROR
        error_category: Optional[str] = None
        rate_limit_type: Optional[str] = None
        integration: Optional[IntegrationDescriptor] = None
        dispatched = False
        result: Optional[ToolResult] = None

        with tool_call_span(name.slug, name.tool) as span:
            try:
                integration, access_token = await self._prepare(user_id, name)
                dispatched = True
                data, raw_body, content_type = await self._forward(
                    integration, name, arguments, access_token
                )
                status = ToolStatus.SUCCESS
                result = ToolResult(
                    integration_slug=name.slug,
                    tool_name=name.tool,
                    data=data,
                    raw_body=raw_body,
                    content_type=content_type,
                    latency_ms=(time.perf_counter() - started) * 1000,
                )
                return result
            except RateLimited as exc:
                status = ToolStatus.RATE_LIMITED
                rate_limit_type = exc.rate_limit_type
                raise
            except Exception as exc:
                error_category = anonymizer.categorize_error(exc)
                if not isinstance(exc, GatewayError):
                    logger.exception("Unexpected failure calling %s", name.qualified)
                raise
            finally:
                span.set_attribute("tool.status", status.value)
                self._record(
                    user_id=user_id,
                    name=name,
                    integration=integration if dispatched else None,
                    arguments=arguments,
                    headers=headers,
                    session=session,
                    call_index=call_index,
                    execution=execution,
                    status=status,
                    error_category=error_category,
                    rate_limit_type=rate_limit_type,
                    output=result.data if result else None,
                    started_at=started_at,
                    latency_ms=(time.perf_counter() - started) * 1000,
                )

    # --- Steps ---

    async def _prepare(
        self, user_id: str, name: ToolName
    ) -> tuple[IntegrationDescriptor, Optional[str]]:
        connection = await self._connections.get_user_connection(user_id, name.slug)
        if connection is None or not connection.enabled:
            raise IntegrationDisabled(name.slug)

        integration = await self._catalog.get_by_slug(name.slug)
        if integration is None:
            raise IntegrationNotFound(name.slug)

        access_token = None
        if connection.oauth_token_encrypted:
            access_token = await self._vault.get_valid_access_token(connection, name.slug)
        return integration, access_token

    def endpoint_url(self, integration: IntegrationDescriptor) -> str:
        path = integration.function_path
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _forward(
        self,
        integration: IntegrationDescriptor,
        name: ToolName,
        arguments: Any,
        access_token: Optional[str],
    ) -> tuple[Any, Optional[bytes], Optional[str]]:
        """Parsed body, plus the raw bytes and content type when it is not JSON."""
        headers = {"Content-Type": "application/json"}
        if access_token:
            headers[OAUTH_TOKEN_HEADER] = access_token

        try:
            resp = await self._http.post(
                self.endpoint_url(integration),
                json={"toolName": name.tool, "arguments": arguments if arguments is not None else {}},
                headers=headers,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamError(504, f"Integration '{name.slug}' timed out") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(
                502, f"Integration '{name.slug}' request failed: {type(exc).__name__}"
            ) from exc

        if resp.status_code == 429:
            raise RateLimited(
                resp.text,
                resp.headers.get(RATE_LIMIT_TYPE_HEADER) or DEFAULT_RATE_LIMIT_TYPE,
            )
        if not resp.is_success:
            raise UpstreamError(resp.status_code, resp.text)

        try:
            return resp.json(), None, None
        except ValueError:
            return resp.text, resp.content, resp.headers.get("content-type")

    # --- Telemetry ---

    def _record(
        self,
        *,
        user_id: str,
        name: ToolName,
        integration: Optional[IntegrationDescriptor],
        arguments: Any,
        headers: Mapping[str, str],
        session: str,
        call_index: int,
        execution: ExecutionInfo,
        status: ToolStatus,
        error_category: Optional[str],
        rate_limit_type: Optional[str],
        output: Any,
        started_at: float,
        latency_ms: float,
    ) -> None:
        try:
            retry = self._patterns.retries.detect(
                session, name.qualified, failed=status is not ToolStatus.SUCCESS
            )
            complexity = anonymizer.param_complexity(arguments)
            client_id, client_version = anonymizer.extract_client(headers)
            record = AnalyticsRecord(
                session_hash=session,
                tool_name=name.qualified,
                integration_slug=name.slug,
                timestamp=int(started_at * 1000),
                latency_ms=round(latency_ms),
                status=status,
                execution_mode=execution.mode,
                batch_id=execution.batch_id,
                batch_size=execution.batch_size,
                is_retry=retry.is_retry,
                retry_count=retry.retry_count,
                session_call_index=call_index,
                error_category=error_category,
                input_token_estimate=anonymizer.estimate_tokens(arguments),
                output_token_estimate=anonymizer.estimate_tokens(output),
                parameter_schema=anonymizer.anonymize_params(arguments) if arguments is not None else None,
                param_depth=complexity.depth,
                param_count=complexity.count,
                array_max_length=complexity.max_array_length,
                geo_region=anonymizer.geo_region(headers, self._geo_header),
                hit_rate_limit=status is ToolStatus.RATE_LIMITED,
                rate_limit_type=rate_limit_type,
                model_id=anonymizer.extract_model_id(headers),
                client_id=client_id,
                client_version=client_version,
                day_of_week=datetime.fromtimestamp(started_at, tz=timezone.utc).isoweekday() % 7,
            )
            usage = None
            if integration is not None:
                usage = UsageEntry(
                    user_id=user_id,
                    integration_id=integration.id,
                    tool_name=name.tool,
                    latency_ms=round(latency_ms),
                    status="success" if status is ToolStatus.SUCCESS else "error",
                )
            self._telemetry.emit(usage=usage, record=record)
        except Exception:
            logger.exception("Failed to record telemetry for %s", name.qualified)
