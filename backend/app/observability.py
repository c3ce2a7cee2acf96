from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

from fastapi import Request

logger = logging.getLogger("recruit_tracker")


@dataclass
class MetricsSnapshot:
    requests_total: int
    requests_5xx: int
    total_latency_ms: float
    transitions_total: int
    reassignments_failed: int


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests_total = 0
        self._requests_5xx = 0
        self._total_latency_ms = 0.0
        self._by_route_status: dict[tuple[str, int], int] = {}
        self._transitions: dict[str, int] = {}
        self._stage_outcomes: dict[str, int] = {}
        self._reassignments_ok = 0
        self._reassignments_failed = 0

    def record(self, *, route: str, status_code: int, latency_ms: float) -> None:
        with self._lock:
            self._requests_total += 1
            if status_code >= 500:
                self._requests_5xx += 1
            self._total_latency_ms += latency_ms
            key = (route, status_code)
            self._by_route_status[key] = self._by_route_status.get(key, 0) + 1

    def record_transition(self, status: str) -> None:
        with self._lock:
            self._transitions[status] = self._transitions.get(status, 0) + 1

    def record_stage_outcome(self, outcome: str) -> None:
        with self._lock:
            self._stage_outcomes[outcome] = self._stage_outcomes.get(outcome, 0) + 1

    def record_reassignment(self, *, succeeded: int, failed: int) -> None:
        with self._lock:
            self._reassignments_ok += succeeded
            self._reassignments_failed += failed

    def snapshot(self) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                requests_total=self._requests_total,
                requests_5xx=self._requests_5xx,
                total_latency_ms=self._total_latency_ms,
                transitions_total=sum(self._transitions.values()),
                reassignments_failed=self._reassignments_failed,
            )

    def to_prometheus(self) -> str:
        snap = self.snapshot()
        avg_latency = (
            snap.total_latency_ms / snap.requests_total if snap.requests_total else 0.0
        )
        lines = [
            "# HELP recruit_tracker_requests_total Total HTTP requests",
            "# TYPE recruit_tracker_requests_total counter",
            f"recruit_tracker_requests_total {snap.requests_total}",
            "# HELP recruit_tracker_requests_5xx_total Total 5xx HTTP requests",
            "# TYPE recruit_tracker_requests_5xx_total counter",
            f"recruit_tracker_requests_5xx_total {snap.requests_5xx}",
            "# HELP recruit_tracker_request_avg_latency_ms Average request latency ms",
            "# TYPE recruit_tracker_request_avg_latency_ms gauge",
            f"recruit_tracker_request_avg_latency_ms {avg_latency:.2f}",
            "# HELP recruit_tracker_status_transitions_total Accepted candidate status transitions",
            "# TYPE recruit_tracker_status_transitions_total counter",
        ]
        with self._lock:
            for status, count in sorted(self._transitions.items()):
                lines.append(f'recruit_tracker_status_transitions_total{{status="{status}"}} {count}')
            lines.append(
                "# HELP recruit_tracker_stage_completions_total Interview stages completed by outcome"
            )
            lines.append("# TYPE recruit_tracker_stage_completions_total counter")
            for outcome, count in sorted(self._stage_outcomes.items()):
                lines.append(
                    f'recruit_tracker_stage_completions_total{{outcome="{outcome}"}} {count}'
                )
            lines.append(
                "# HELP recruit_tracker_reassignments_total Candidate reassignments by result"
            )
            lines.append("# TYPE recruit_tracker_reassignments_total counter")
            lines.append(
                f'recruit_tracker_reassignments_total{{result="succeeded"}} {self._reassignments_ok}'
            )
            lines.append(
                f'recruit_tracker_reassignments_total{{result="failed"}} '
                f"{self._reassignments_failed}"
            )
            lines.append(
                "# HELP recruit_tracker_route_requests_total HTTP requests by route and status"
            )
            lines.append("# TYPE recruit_tracker_route_requests_total counter")
            for (route, status_code), count in sorted(self._by_route_status.items()):
                lines.append(
                    'recruit_tracker_route_requests_total'
                    f'{{route="{route}",status="{status_code}"}} {count}'
                )
        return "\n".join(lines) + "\n"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


async def observe_request(
    request: Request,
    call_next,
    *,
    metrics: MetricsRegistry,
):
    start = time.perf_counter()
    path = request.url.path
    try:
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start) * 1000.0
        metrics.record(route=path, status_code=response.status_code, latency_ms=latency_ms)
        logger.info(
            "request_complete method=%s path=%s status=%s latency_ms=%.2f",
            request.method,
            path,
            response.status_code,
            latency_ms,
        )
        return response
    except Exception:
        latency_ms = (time.perf_counter() - start) * 1000.0
        metrics.record(route=path, status_code=500, latency_ms=latency_ms)
        logger.exception(
            "request_failed method=%s path=%s latency_ms=%.2f",
            request.method,
            path,
            latency_ms,
        )
        raise
