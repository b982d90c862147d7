from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


HTTP_REQUESTS_TOTAL = Counter(
    "vsdc_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "vsdc_http_request_duration_seconds",
    "HTTP request duration (seconds)",
    ["method", "path"],
)


CLEARANCE_REQUESTS_TOTAL = Counter(
    "vsdc_clearance_requests_total",
    "Clearance requests by outcome",
    ["result"],
)

SIMULATOR_RUNS_TOTAL = Counter(
    "vsdc_simulator_runs_total",
    "Sequence player runs by kind and terminal status",
    ["kind", "status"],
)

SIMULATOR_PACKETS_TOTAL = Counter(
    "vsdc_simulator_packets_total",
    "Packet events emitted by the sequence player",
    ["status"],
)

OBSERVER_QUEUE_DROPS_TOTAL = Counter(
    "vsdc_observer_queue_drops_total",
    "Observer feed events dropped on a full queue",
    ["event_type"],
)


def render_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
