from __future__ import annotations

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple

from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

MAX_RECENT_METRICS = 500

# Approximate per-1K token pricing in USD.
MODEL_PRICING_PER_1K = {
    "gemini-1.5-flash-001": {"input": 0.000075, "output": 0.0003},
    "gemini-1.5-flash": {"input": 0.000075, "output": 0.0003},
    "gemini-1.5-pro": {"input": 0.00125, "output": 0.005},
    "gemini-2.0-flash": {"input": 0.0001, "output": 0.0004},
}

_recent: Deque[Dict[str, Any]] = deque(maxlen=MAX_RECENT_METRICS)


def _coerce_number(value: Any) -> Optional[float]:
    try:
        if value is None or value == "":
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def estimate_cost(model: Optional[str], tokens_in: Optional[int], tokens_out: Optional[int]) -> Optional[float]:
    """Rudimentary USD cost estimate using static per-1K token pricing."""
    if model is None:
        return None
    pricing = MODEL_PRICING_PER_1K.get(model.lower())
    if pricing is None:
        return None
    cost = 0.0
    if tokens_in:
        cost += (tokens_in / 1000.0) * pricing["input"]
    if tokens_out:
        cost += (tokens_out / 1000.0) * pricing["output"]
    return round(cost, 6)


def extract_usage_tokens(payload: Any) -> Tuple[Optional[int], Optional[int]]:
    """Pull prompt/candidate token counts from a generateContent response."""
    if not isinstance(payload, dict):
        return None, None
    usage = payload.get("usageMetadata")
    if not isinstance(usage, dict):
        return None, None
    prompt = usage.get("promptTokenCount")
    completion = usage.get("candidatesTokenCount")
    return (
        int(prompt) if isinstance(prompt, (int, float)) else None,
        int(completion) if isinstance(completion, (int, float)) else None,
    )


def log_metric(
    component: str,
    model_or_tool: Optional[str],
    *,
    tokens_in: Optional[int] = None,
    tokens_out: Optional[int] = None,
    latency_ms: Optional[float] = None,
    cost_usd: Optional[float] = None,
    conversation_id: Optional[str] = None,
    outcome: str = "ok",
) -> Dict[str, Any]:
    """Emit a metric record to the log and keep it in the recent buffer."""
    row = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "component": component,
        "model_or_tool": model_or_tool or "",
        "tokens_in": tokens_in,
        "tokens_out": tokens_out,
        "latency_ms": round(latency_ms, 3) if latency_ms is not None else None,
        "cost_usd": cost_usd if cost_usd is not None else estimate_cost(model_or_tool, tokens_in, tokens_out),
        "conversation_id": conversation_id,
        "outcome": outcome,
    }
    _recent.append(row)
    logger.info("metric", extra=row)
    return row


@dataclass
class MetricTimer:
    component: str
    model_or_tool: Optional[str]
    conversation_id: Optional[str]
    _start: float = field(default_factory=time.perf_counter)

    def done(
        self,
        *,
        tokens_in: Optional[int] = None,
        tokens_out: Optional[int] = None,
        cost_usd: Optional[float] = None,
        outcome: str = "ok",
    ) -> Dict[str, Any]:
        latency_ms = (time.perf_counter() - self._start) * 1000
        return log_metric(
            self.component,
            self.model_or_tool,
            tokens_in=tokens_in,
            tokens_out=tokens_out,
            latency_ms=latency_ms,
            cost_usd=cost_usd,
            conversation_id=self.conversation_id,
            outcome=outcome,
        )


def start_timer(component: str, model_or_tool: Optional[str], conversation_id: Optional[str] = None) -> MetricTimer:
    """Convenience helper to measure elapsed time + submit a metric."""
    return MetricTimer(component=component, model_or_tool=model_or_tool, conversation_id=conversation_id)


@contextmanager
def timed_operation(component: str, model_or_tool: Optional[str], conversation_id: Optional[str] = None):
    """Log latency for an arbitrary block; the outcome is `error` if it raises."""
    timer = start_timer(component, model_or_tool, conversation_id)
    outcome = "error"
    try:
        yield timer
        outcome = "ok"
    finally:
        timer.done(outcome=outcome)


def fetch_metrics(limit: int = MAX_RECENT_METRICS) -> List[Dict[str, Any]]:
    """Most recent metric records, newest first."""
    rows = list(_recent)
    rows.reverse()
    return rows[:limit]


def clear_metrics() -> None:
    _recent.clear()


def summarize_metrics(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Compute total cost, average latency and error count per component."""
    total_cost = 0.0
    latency_by_component: Dict[str, List[float]] = {}
    errors_by_component: Dict[str, int] = {}
    for row in records:
        cost = _coerce_number(row.get("cost_usd"))
        if cost:
            total_cost += cost
        component = row.get("component") or "unknown"
        latency = _coerce_number(row.get("latency_ms"))
        if latency is not None:
            latency_by_component.setdefault(component, []).append(latency)
        if row.get("outcome") not in (None, "ok"):
            errors_by_component[component] = errors_by_component.get(component, 0) + 1
    avg_latency = {
        comp: round(sum(vals) / len(vals), 3) for comp, vals in latency_by_component.items() if vals
    }
    return {
        "total_cost_usd": round(total_cost, 6),
        "average_latency_ms": avg_latency,
        "errors": errors_by_component,
        "sample_size": len(records),
    }
