"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics plus point-of-sale figures
(checkouts, stock conflicts, rejected requests, catalog size).
Restrict it to the internal network in production.
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
else:
    registry = REGISTRY

_metric_registry = registry if not MULTIPROCESS_MODE else None

# HTTP
http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

# Point of sale
sales_completed_total = Counter(
    'shopdesk_sales_completed_total',
    'Completed checkouts',
    ['payment_method'],
    registry=_metric_registry
)

stock_conflicts_total = Counter(
    'shopdesk_stock_conflicts_total',
    'Checkouts rolled back because stock no longer covered a line',
    registry=_metric_registry
)

checkout_duration_seconds = Histogram(
    'shopdesk_checkout_duration_seconds',
    'Time spent in the checkout transaction',
    ['outcome'],
    registry=_metric_registry,
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)
)

shop_errors_total = Counter(
    'shopdesk_errors_total',
    'Requests answered with an application error',
    ['error'],
    registry=_metric_registry
)

catalog_items = Gauge(
    'shopdesk_catalog_items',
    'Items held by the catalog snapshot after the last refresh',
    registry=_metric_registry,
    multiprocess_mode='max'
)


def setup_metrics_instrumentation(app):
    """Time every request except the scrape itself."""

    @app.before_request
    def before_request_metrics():
        if request.endpoint != 'metrics.metrics':
            g._metrics_start = time.perf_counter()

    @app.after_request
    def after_request_metrics(response):
        start = g.pop('_metrics_start', None)
        if start is None:
            return response
        try:
            endpoint = request.endpoint or 'unknown'
            http_request_duration_seconds.labels(
                method=request.method,
                endpoint=endpoint
            ).observe(time.perf_counter() - start)
            http_requests_total.labels(
                method=request.method,
                endpoint=endpoint,
                http_status=response.status_code
            ).inc()
        except Exception as e:
            app.logger.warning(f"Failed to record metrics: {e}")
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus scrape endpoint (not authenticated)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
