"""
MCP Hub Telemetry Emitter — fire-and-forget delivery.

Usage-log entries and analytics records are written from background tasks
so they never gate a response:
- One task per invocation attempt, both sinks written concurrently
- Each sink failure is logged and suppressed, never raised to the caller
- Pending tasks are tracked so shutdown can join them
"""
from __future__ import annotations
from typing import Optional
import asyncio
import logging

from hub.models import AnalyticsRecord, UsageEntry
from hub.store.ports import AnalyticsSink, UsageLog

logger = logging.getLogger(__name__)


class TelemetryEmitter:
    def __init__(self, usage_log: UsageLog, analytics: AnalyticsSink):
        self._usage_log = usage_log
        self._analytics = analytics
        self._pending: set[asyncio.Task] = set()
        self._closed = False
        self.failures = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def emit(
        self,
        usage: Optional[UsageEntry] = None,
        record: Optional[AnalyticsRecord] = None,
    ) -> None:
        """Schedule delivery and return immediately."""
        if usage is None and record is None:
            return
        if self._closed:
            logger.warning("Telemetry emitter closed; dropping record for %s",
                           record.tool_name if record else usage.tool_name)
            return
        task = asyncio.get_running_loop().create_task(self._deliver(usage, record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(
        self,
        usage: Optional[UsageEntry],
        record: Optional[AnalyticsRecord],
    ) -> None:
        writes = []
        if usage is not None:
            writes.append(("usage log", self._usage_log.log(usage)))
        if record is not None:
            writes.append(("analytics", self._analytics.log_tool_call(record)))

        results = await asyncio.gather(*(w for _, w in writes), return_exceptions=True)
        for (sink, _), result in zip(writes, results):
            if isinstance(result, Exception):
                self.failures += 1
                logger.warning("Failed to write %s: %s", sink, result)

    async def flush(self) -> None:
        """Wait for every scheduled delivery, including ones scheduled meanwhile."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        self._closed = True
        await self.flush()
