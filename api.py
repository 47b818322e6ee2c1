#!/usr/bin/env python3
"""
HTTP API for workload right-sizing.

Endpoints:
- POST /api/metrics: validate a batch request and return per-workload metrics
- GET /health: liveness probe
- GET /metrics: Prometheus text counters for self-monitoring

Validation errors return 400 before any engine work. Batch-level telemetry
errors are mapped to a status by their kind; per-workload failures are
reported inline and still return 200.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify, Response, request

from config import setup_logging, API_HOST, API_PORT
from metrics import prometheus_client as prom
from metrics.prometheus_client import PrometheusError
from orchestrator import WorkloadOrchestrator, build_orchestrator, to_response
from validation import RequestValidationError, validate_metrics_request

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Status code per batch-level telemetry error kind
ERROR_STATUS = {
    prom.UNAUTHENTICATED: 401,
    prom.PERMISSION_DENIED: 403,
    prom.NOT_FOUND: 404,
    prom.UNAVAILABLE: 503,
    prom.TIMEOUT: 503,
}

ERROR_MESSAGES = {
    prom.UNAUTHENTICATED: "Authentication with the telemetry backend failed",
    prom.PERMISSION_DENIED: "Permission denied by the telemetry backend",
    prom.NOT_FOUND: "Project or cluster not found in the telemetry backend",
    prom.UNAVAILABLE: "Telemetry backend unavailable",
    prom.TIMEOUT: "Telemetry backend timed out",
}

# Metrics for observability
_metrics = {
    'requests_total': 0,
    'requests_by_endpoint': {},
    'errors_total': 0,
    'workloads_total': 0,
    'workload_errors_total': 0,
    'start_time': time.time()
}
_metrics_lock = threading.Lock()

_orchestrator: Optional[WorkloadOrchestrator] = None
_orchestrator_lock = threading.Lock()


def _record_request(endpoint: str):
    """Record request metrics"""
    with _metrics_lock:
        _metrics['requests_total'] += 1
        _metrics['requests_by_endpoint'][endpoint] = _metrics['requests_by_endpoint'].get(endpoint, 0) + 1


def _record(name: str, amount: int = 1):
    with _metrics_lock:
        _metrics[name] += amount


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')


def get_orchestrator() -> WorkloadOrchestrator:
    """Orchestrator built on first use from configuration"""
    global _orchestrator
    with _orchestrator_lock:
        if _orchestrator is None:
            _orchestrator = build_orchestrator()
        return _orchestrator


def status_for(error: PrometheusError) -> int:
    return ERROR_STATUS.get(error.kind, 500)


@app.route('/api/metrics', methods=['POST'])
def post_metrics():
    """Right-sizing metrics for a batch of workloads"""
    _record_request('/api/metrics')
    payload = request.get_json(silent=True)

    try:
        batch = validate_metrics_request(payload)
    except RequestValidationError as e:
        logger.info(f"Rejected request ({e.kind}): {e.details}")
        _record('errors_total')
        return jsonify(e.to_dict()), 400

    try:
        results = get_orchestrator().run_batch(batch)
    except PrometheusError as e:
        status = status_for(e)
        logger.error(f"Batch for {batch.project_id}/{batch.cluster_name} failed ({e.kind}): {e}")
        _record('errors_total')
        return jsonify({
            "error": ERROR_MESSAGES.get(e.kind, "Failed to fetch metrics"),
            "kind": e.kind,
            "details": str(e),
        }), status

    _record('workloads_total', len(results))
    _record('workload_errors_total', sum(1 for r in results if not r.ok))
    return jsonify(to_response(results))


@app.route('/health')
def health():
    """Health check endpoint for liveness probes"""
    _record_request('/health')
    return jsonify({
        "status": "healthy",
        "timestamp": _timestamp()
    })


@app.route('/metrics')
def metrics():
    """Prometheus metrics endpoint for self-monitoring"""
    _record_request('/metrics')
    with _metrics_lock:
        snapshot = dict(_metrics)
        by_endpoint = dict(_metrics['requests_by_endpoint'])
    uptime = time.time() - snapshot['start_time']
    cache_stats = _orchestrator.cache.stats() if _orchestrator is not None else {"hits": 0, "misses": 0, "errors": 0}

    # Generate Prometheus-format metrics
    lines = [
        "# HELP rightsizing_requests_total Total number of HTTP requests",
        "# TYPE rightsizing_requests_total counter",
        f"rightsizing_requests_total {snapshot['requests_total']}",
        "",
        "# HELP rightsizing_errors_total Total number of failed requests",
        "# TYPE rightsizing_errors_total counter",
        f"rightsizing_errors_total {snapshot['errors_total']}",
        "",
        "# HELP rightsizing_workloads_total Workloads processed",
        "# TYPE rightsizing_workloads_total counter",
        f"rightsizing_workloads_total {snapshot['workloads_total']}",
        "",
        "# HELP rightsizing_workload_errors_total Workloads returned as error items",
        "# TYPE rightsizing_workload_errors_total counter",
        f"rightsizing_workload_errors_total {snapshot['workload_errors_total']}",
        "",
        "# HELP rightsizing_uptime_seconds API uptime in seconds",
        "# TYPE rightsizing_uptime_seconds gauge",
        f"rightsizing_uptime_seconds {uptime:.2f}",
        "",
        "# HELP rightsizing_cache_operations_total Telemetry cache lookups by outcome",
        "# TYPE rightsizing_cache_operations_total counter",
    ]
    for outcome in ('hits', 'misses', 'errors'):
        lines.append(f'rightsizing_cache_operations_total{{outcome="{outcome}"}} {cache_stats.get(outcome, 0)}')

    # Add per-endpoint metrics
    lines.append("")
    lines.append("# HELP rightsizing_requests_by_endpoint Requests per endpoint")
    lines.append("# TYPE rightsizing_requests_by_endpoint counter")
    for endpoint, count in by_endpoint.items():
        lines.append(f'rightsizing_requests_by_endpoint{{endpoint="{endpoint}"}} {count}')

    return Response('\n'.join(lines), mimetype='text/plain')


if __name__ == '__main__':
    logger.info(f"Right-sizing API listening on http://{API_HOST}:{API_PORT}")
    logger.info(f"Health: http://{API_HOST}:{API_PORT}/health")
    logger.info(f"Metrics: http://{API_HOST}:{API_PORT}/metrics")
    app.run(debug=False, host=API_HOST, port=API_PORT)
