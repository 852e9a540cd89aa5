"""
Prometheus metrics blueprint.

Exposes /metrics with request metrics (labelled by the caller's identity
kind) and authentication metrics. The endpoint is not authenticated and
must only be reachable from the monitoring network.
"""
from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY
import time
import os

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY


# Requests
http_requests_total = Counter(
    'http_requests_total',
    'HTTP requests by endpoint, status and caller identity kind',
    ['method', 'endpoint', 'http_status', 'identity'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'HTTP requests currently being processed',
    registry=_metric_registry
)

# Authentication
auth_events_total = Counter(
    'auth_events_total',
    'Authentication events by kind and outcome',
    ['event', 'outcome'],
    registry=_metric_registry
)

rate_limit_rejections_total = Counter(
    'rate_limit_rejections_total',
    'Requests rejected by the rate limiter',
    ['operation'],
    registry=_metric_registry
)


def record_auth_event(event: str, success: bool):
    """Count a login / logout / verification outcome."""
    auth_events_total.labels(event=event, outcome='success' if success else 'failure').inc()


def _identity_label() -> str:
    auth = g.get('auth')
    return auth.identity_kind.value if auth is not None else 'none'


def setup_metrics_instrumentation(app):
    """Register request hooks that time every request and count its outcome."""

    @app.before_request
    def start_request_timer():
        g._metrics_started_at = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def record_request_metrics(response):
        started_at = g.pop('_metrics_started_at', None)
        if started_at is None:
            return response

        try:
            # Endpoint name (e.g. 'portal.me'), never the raw path
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(time.time() - started_at)
            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                http_status=response.status_code,
                identity=_identity_label()
            ).inc()
        except Exception as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        finally:
            http_requests_in_flight.dec()

        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus exposition (text format)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
