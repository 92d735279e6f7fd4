"""
MCP Hub Call-Pattern Detection — bounded per-session state.

Three small detectors feed the anonymous analytics record:
- ExecutionModeDetector: coalesces near-simultaneous calls into a batch
- RetryDetector: flags a (session, tool) pair recurring within a window
- SessionCallCounter: 1-based index of a call within its session

All share WindowedCache, an explicit bounded map with an injectable clock.
State is in-process and approximate across restarts or replicas.
"""
from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar
import time
import uuid

from hub.models import ExecutionMode

V = TypeVar("V")


class WindowedCache(Generic[V]):
    """Bounded map whose entries expire ``window_seconds`` after their last touch.

    - ``touch`` stores a value and returns the previous live one
    - ``sweep`` drops expired entries; it also runs on its own every
      ``sweep_interval`` seconds of clock time
    - Beyond ``max_entries`` the least recently touched entry is evicted
    """

    def __init__(
        self,
        window_seconds: float,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: Optional[float] = None,
    ):
        self.window_seconds = window_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._sweep_interval = sweep_interval if sweep_interval is not None else window_seconds
        self._entries: OrderedDict[Hashable, tuple[float, V]] = OrderedDict()
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._entries)

    def now(self) -> float:
        return self._clock()

    def get(self, key: Hashable, now: Optional[float] = None) -> Optional[V]:
        now = self._clock() if now is None else now
        entry = self._entries.get(key)
        if entry is None:
            return None
        touched_at, value = entry
        if now - touched_at > self.window_seconds:
            del self._entries[key]
            return None
        return value

    def touch(self, key: Hashable, value: V, now: Optional[float] = None) -> Optional[V]:
        now = self._clock() if now is None else now
        previous = self.get(key, now)
        self._entries[key] = (now, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        if now - self._last_sweep >= self._sweep_interval:
            self.sweep(now)
        return previous

    def pop(self, key: Hashable, now: Optional[float] = None) -> Optional[V]:
        value = self.get(key, now)
        self._entries.pop(key, None)
        return value

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove expired entries. Returns count removed."""
        now = self._clock() if now is None else now
        self._last_sweep = now
        expired = [k for k, (t, _) in self._entries.items() if now - t > self.window_seconds]
        for k in expired:
            del self._entries[k]
        return len(expired)


# ---------------------------------------------------------------------------
# Execution mode
# ---------------------------------------------------------------------------

@dataclass
class _Batch:
    batch_id: str
    size: int


@dataclass(frozen=True)
class ExecutionInfo:
    mode: ExecutionMode
    batch_id: Optional[str] = None
    batch_size: Optional[int] = None


class ExecutionModeDetector:
    """A call within the coalescing window of the session's previous call is parallel.

    The first call of a burst is already recorded by the time the second
    arrives, so it stays tagged sequential; every later member of the burst
    carries the shared batch id and the running batch size.
    """

    def __init__(self, cache: WindowedCache[_Batch]):
        self._cache = cache

    @classmethod
    def create(
        cls,
        window_ms: int = 50,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> "ExecutionModeDetector":
        return cls(WindowedCache(window_ms / 1000.0, max_entries, clock, sweep_interval=60.0))

    def detect(self, session_hash: str, now: Optional[float] = None) -> ExecutionInfo:
        now = self._cache.now() if now is None else now
        batch = self._cache.get(session_hash, now)
        if batch is None:
            self._cache.touch(session_hash, _Batch(batch_id=uuid.uuid4().hex[:16], size=1), now)
            return ExecutionInfo(ExecutionMode.SEQUENTIAL)

        batch = _Batch(batch_id=batch.batch_id, size=batch.size + 1)
        self._cache.touch(session_hash, batch, now)
        return ExecutionInfo(ExecutionMode.PARALLEL, batch.batch_id, batch.size)


# ---------------------------------------------------------------------------
# Retries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RetryInfo:
    is_retry: bool
    retry_count: int


class RetryDetector:
    """Same (session, tool) again within the window is a retry.

    Consecutive failures grow ``retry_count``; a success closes the chain so
    the next recurrence counts from 1 again.
    """

    def __init__(self, cache: WindowedCache[int]):
        self._cache = cache

    @classmethod
    def create(
        cls,
        window_seconds: float = 60.0,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> "RetryDetector":
        return cls(WindowedCache(window_seconds, max_entries, clock))

    def detect(
        self,
        session_hash: str,
        tool_name: str,
        failed: bool,
        now: Optional[float] = None,
    ) -> RetryInfo:
        key = (session_hash, tool_name)
        previous = self._cache.get(key, now)
        retry_count = previous + 1 if previous is not None else 0
        self._cache.touch(key, retry_count if failed else 0, now)
        return RetryInfo(is_retry=previous is not None, retry_count=retry_count)


# ---------------------------------------------------------------------------
# Session call index
# ---------------------------------------------------------------------------

class SessionCallCounter:
    def __init__(self, cache: WindowedCache[int]):
        self._cache = cache

    @classmethod
    def create(
        cls,
        idle_seconds: float = 30 * 60,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> "SessionCallCounter":
        return cls(WindowedCache(idle_seconds, max_entries, clock))

    def next(self, session_hash: str, now: Optional[float] = None) -> int:
        index = (self._cache.get(session_hash, now) or 0) + 1
        self._cache.touch(session_hash, index, now)
        return index


# ---------------------------------------------------------------------------
# Bundle injected into the invoker
# ---------------------------------------------------------------------------

@dataclass
class CallPatterns:
    execution: ExecutionModeDetector
    retries: RetryDetector
    calls: SessionCallCounter

    @classmethod
    def create(
        cls,
        coalesce_window_ms: int = 50,
        retry_window_seconds: float = 60.0,
        max_entries: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CallPatterns":
        return cls(
            execution=ExecutionModeDetector.create(coalesce_window_ms, max_entries, clock),
            retries=RetryDetector.create(retry_window_seconds, max_entries, clock),
            calls=SessionCallCounter.create(max_entries=max_entries, clock=clock),
        )
