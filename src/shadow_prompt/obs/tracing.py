"""Per-run tracing and summary metrics."""

from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from shadow_prompt.types import ProviderAttempt, RunStatus

_PREVIEW_CHARS = 80


@dataclass(slots=True)
class RunTrace:
    trace_id: str
    timestamp_utc: str
    status: RunStatus
    source_preview: str
    display_text: str
    provider_attempts: list[ProviderAttempt]
    knowledge_chunks: int
    latency_ms: float
    web_results: int = 0
    detail: str = ""
    answered_by: str | None = None


class TraceStore:
    """In-memory, bounded trace storage for the local control surface.

    Writes come from the event thread and reads from API threads, so access
    is guarded by a lock.
    """

    def __init__(self, *, max_records: int = 500) -> None:
        self._records: dict[str, RunTrace] = {}
        self._max_records = max_records
        self._lock = threading.Lock()

    def create_record(
        self,
        *,
        trace_id: str,
        status: RunStatus,
        source_text: str = "",
        display_text: str = "",
        provider_attempts: list[ProviderAttempt] | None = None,
        knowledge_chunks: int = 0,
        latency_ms: float = 0.0,
        web_results: int = 0,
        detail: str = "",
        answered_by: str | None = None,
    ) -> RunTrace:
        record = RunTrace(
            trace_id=trace_id,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            status=status,
            source_preview=preview(source_text),
            display_text=display_text,
            provider_attempts=list(provider_attempts or []),
            knowledge_chunks=knowledge_chunks,
            latency_ms=latency_ms,
            web_results=web_results,
            detail=detail,
            answered_by=answered_by,
        )
        with self._lock:
            self._records[trace_id] = record
            while len(self._records) > self._max_records:
                del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> RunTrace:
        with self._lock:
            record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[RunTrace]:
        with self._lock:
            return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate run counts and latency for dashboard display."""
        with self._lock:
            records = list(self._records.values())
        total = len(records)
        statuses = Counter(record.status for record in records)
        counts = {f"{status.value}_runs": statuses.get(status, 0) for status in RunStatus}
        if total == 0:
            return {
                "total_runs": 0,
                **counts,
                "provider_calls": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        return {
            "total_runs": total,
            **counts,
            "provider_calls": sum(len(record.provider_attempts) for record in records),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
        }


class Timer:
    """Simple context timer."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def preview(text: str, limit: int = _PREVIEW_CHARS) -> str:
    """Single-line, truncated rendering of user text for logs and traces."""
    flat = " ".join(text.split())
    if len(flat) <= limit:
        return flat
    return flat[: limit - 3] + "..."
