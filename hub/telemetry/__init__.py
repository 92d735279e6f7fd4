"""
MCP Hub Telemetry — anonymous usage analytics.

Provides:
- anonymizer: session hashing, parameter shapes, token estimates, error
  categories, geo buckets, client detection
- detection: bounded per-session detectors (execution mode, retries, call index)
- TelemetryEmitter: fire-and-forget delivery to the usage log and analytics sink
"""
from hub.telemetry.detection import (
    CallPatterns,
    ExecutionInfo,
    ExecutionModeDetector,
    RetryDetector,
    RetryInfo,
    SessionCallCounter,
    WindowedCache,
)
from hub.telemetry.emitter import TelemetryEmitter

__all__ = [
    # Detection
    "CallPatterns",
    "ExecutionInfo",
    "ExecutionModeDetector",
    "RetryDetector",
    "RetryInfo",
    "SessionCallCounter",
    "WindowedCache",
    # Delivery
    "TelemetryEmitter",
]
