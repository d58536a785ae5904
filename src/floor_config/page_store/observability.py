"""Page store observability helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import json
from pathlib import Path
from typing import Any, Mapping


_REQUIRED_COUNTERS: tuple[str, ...] = (
    "mutation_applied_total",
    "mutation_noop_total",
    "mutation_rejected_total",
    "persist_ok_total",
    "persist_error_total",
    "reorder_dropped_ids_total",
    "subscriber_error_total",
)


@dataclass
class PageStoreMetrics:
    store_id: str = "page_store"
    counters: dict[str, int] = field(default_factory=dict)
    last_persist_error: str | None = None

    def __post_init__(self) -> None:
        self.store_id = _required(self.store_id, "store_id")
        for key in _REQUIRED_COUNTERS:
            self.counters.setdefault(key, 0)

    def bump(self, key: str, delta: int = 1) -> None:
        if key not in self.counters:
            raise ValueError(f"unsupported metric counter: {key}")
        self.counters[key] = int(self.counters.get(key, 0)) + int(delta)

    def record_persist_error(self, exc: BaseException) -> None:
        self.bump("persist_error_total")
        self.last_persist_error = f"{exc.__class__.__name__}:{str(exc)[:256]}"

    def snapshot(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "generated_at_utc": _utc_now(),
            "store_id": self.store_id,
            "metrics": dict(self.counters),
        }
        if self.last_persist_error is not None:
            payload["last_persist_error"] = self.last_persist_error
        return payload

    def export(self, path: Path) -> dict[str, Any]:
        payload = self.snapshot()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, sort_keys=True, ensure_ascii=True, indent=2) + "\n", encoding="utf-8")
        return payload


def build_health_payload(*, store_id: str, counters: Mapping[str, Any]) -> dict[str, Any]:
    persist_errors = int(counters.get("persist_error_total", 0))
    subscriber_errors = int(counters.get("subscriber_error_total", 0))
    noops = int(counters.get("mutation_noop_total", 0))
    rejected = int(counters.get("mutation_rejected_total", 0))
    health_state = "GREEN"
    reasons: list[str] = []
    if noops > 0:
        health_state = "AMBER"
        reasons.append("STALE_REFERENCE_NOOPS_NONZERO")
    if rejected > 0:
        health_state = "AMBER"
        reasons.append("REJECTED_MUTATIONS_NONZERO")
    if persist_errors > 0:
        health_state = "RED"
        reasons.append("SNAPSHOT_PERSIST_ERROR_NONZERO")
    if subscriber_errors > 0:
        health_state = "RED"
        reasons.append("SUBSCRIBER_ERROR_NONZERO")
    return {
        "generated_at_utc": _utc_now(),
        "store_id": store_id,
        "health_state": health_state,
        "health_reasons": reasons,
        "counters": {key: int(counters.get(key, 0)) for key in _REQUIRED_COUNTERS},
    }


def _required(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValueError(f"{field_name} is required")
    return text


def _utc_now() -> str:
    return datetime.now(tz=timezone.utc).isoformat().replace("+00:00", "Z")
