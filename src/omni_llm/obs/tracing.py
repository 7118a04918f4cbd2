"""Per-request tracing: stage timings, tool traces and token estimates."""

from __future__ import annotations

import re
import time
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone

from omni_llm.types import PlanDecision, StageTrace, ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    model_id: str
    plan: dict[str, object]
    stages: list[StageTrace]
    tool_traces: list[ToolTrace]
    streamed: bool
    reasoning_used: bool
    input_tokens: int
    output_tokens: int
    latency_ms: float
    artifact_count: int = 0
    extra: dict[str, object] = field(default_factory=dict)


class TraceStore:
    """In-memory trace storage for API-level observability."""

    def __init__(self, *, max_records: int = 1000) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._max_records = max_records

    def create_record(
        self,
        *,
        model_id: str,
        plan: PlanDecision,
        stages: list[StageTrace],
        tool_traces: list[ToolTrace],
        streamed: bool,
        reasoning_used: bool,
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
        artifact_count: int = 0,
    ) -> TraceRecord:
        trace_id = str(uuid.uuid4())
        record = TraceRecord(
            trace_id=trace_id,
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            model_id=model_id,
            plan={
                "selected_model_id": plan.selected_model_id,
                "use_web_search": plan.use_web_search,
                "use_reasoning": plan.use_reasoning,
                "use_tools": plan.use_tools,
            },
            stages=list(stages),
            tool_traces=list(tool_traces),
            streamed=streamed,
            reasoning_used=reasoning_used,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=latency_ms,
            artifact_count=artifact_count,
        )
        self._records[trace_id] = record
        while len(self._records) > self._max_records:
            self._records.pop(next(iter(self._records)))
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, object]:
        """Aggregate core observability metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "total_input_tokens": 0,
                "total_output_tokens": 0,
                "stage_counts": {},
                "model_counts": {},
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        stage_counts = Counter(stage.name for record in records for stage in record.stages)
        model_counts = Counter(record.model_id for record in records)

        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "stage_counts": dict(stage_counts),
            "model_counts": dict(model_counts),
        }


class Timer:
    """Simple context timer used by the pipeline stages."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
