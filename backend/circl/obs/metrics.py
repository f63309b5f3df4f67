"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


REQUEST_COUNTER = Counter(
	"circl_http_requests_total",
	"Total HTTP requests processed",
	["route", "method", "status"],
)

REQUEST_LATENCY = Histogram(
	"circl_http_request_duration_seconds",
	"HTTP request latency in seconds",
	["route", "method"],
	buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

SOCKET_CLIENTS = Gauge(
	"circl_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"circl_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

LOCATION_UPDATES = Counter(
	"circl_location_updates_total",
	"Location updates accepted",
	["mode"],
)

LOCATION_REJECTS = Counter(
	"circl_location_rejects_total",
	"Location updates rejected",
	["reason"],
)

PROXIMITY_EVALUATIONS = Counter(
	"circl_proximity_evaluations_total",
	"Proximity evaluations run per trigger",
	["trigger"],
)

PROXIMITY_ALERTS = Counter(
	"circl_proximity_alerts_total",
	"Proximity notifications produced",
)

PROXIMITY_DISPATCH_FAILURES = Counter(
	"circl_proximity_dispatch_failures_total",
	"Proximity notifications that failed to dispatch",
	["channel"],
)

PROXIMITY_EVALUATION_LATENCY = Histogram(
	"circl_proximity_evaluation_seconds",
	"Time spent evaluating proximity for one observer",
	buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)

FRIEND_REQUESTS = Counter(
	"circl_friend_requests_total",
	"Friend request lifecycle events",
	["action"],
)

CIRCLE_EVENTS = Counter(
	"circl_circle_events_total",
	"Circle lifecycle events",
	["action"],
)

PROFILE_EVENTS = Counter(
	"circl_profile_events_total",
	"Profile lifecycle events",
	["action"],
)

REDIS_UP = Gauge("circl_redis_up", "Redis availability (1 up, 0 down)")
REDIS_LATENCY = Histogram(
	"circl_redis_ping_seconds",
	"Redis ping latency",
	buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25),
)
POSTGRES_UP = Gauge("circl_postgres_up", "Postgres availability (1 up, 0 down)")
POSTGRES_LATENCY = Histogram(
	"circl_postgres_probe_seconds",
	"Postgres readiness probe latency",
	buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25),
)


def observe_request(route: str, method: str, status: int, elapsed_seconds: float) -> None:
	REQUEST_COUNTER.labels(route=route, method=method, status=str(status)).inc()
	REQUEST_LATENCY.labels(route=route, method=method).observe(elapsed_seconds)


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def inc_location_update(mode: str) -> None:
	LOCATION_UPDATES.labels(mode=mode).inc()


def inc_location_reject(reason: str) -> None:
	LOCATION_REJECTS.labels(reason=reason).inc()


def inc_proximity_evaluation(trigger: str) -> None:
	PROXIMITY_EVALUATIONS.labels(trigger=trigger).inc()


def observe_proximity_evaluation(elapsed_seconds: float) -> None:
	PROXIMITY_EVALUATION_LATENCY.observe(elapsed_seconds)


def inc_proximity_alerts(count: int = 1) -> None:
	if count > 0:
		PROXIMITY_ALERTS.inc(count)


def inc_proximity_dispatch_failure(channel: str) -> None:
	PROXIMITY_DISPATCH_FAILURES.labels(channel=channel).inc()


def inc_friend_request(action: str) -> None:
	FRIEND_REQUESTS.labels(action=action).inc()


def inc_circle_event(action: str) -> None:
	CIRCLE_EVENTS.labels(action=action).inc()


def inc_profile_event(action: str) -> None:
	PROFILE_EVENTS.labels(action=action).inc()


def mark_redis(ok: bool, *, latency_seconds: float | None = None) -> None:
	REDIS_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		REDIS_LATENCY.observe(latency_seconds)


def mark_postgres(ok: bool, *, latency_seconds: float | None = None) -> None:
	POSTGRES_UP.set(1 if ok else 0)
	if latency_seconds is not None:
		POSTGRES_LATENCY.observe(latency_seconds)
