"""
Prometheus telemetry client.

Builds PromQL for each metric kind the sizing engine needs and returns the raw
matrix result (`data.result`) of `/api/v1/query_range`. Failures are raised as
PrometheusError subclasses whose `kind` tells the caller how to react.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from config import (
    PROMETHEUS_URL,
    PROMETHEUS_TIMEOUT_SECONDS,
    PROMETHEUS_BEARER_TOKEN,
    PROMETHEUS_STEP,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Errors
# =============================================================================
UNAUTHENTICATED = "unauthenticated"
PERMISSION_DENIED = "permission_denied"
NOT_FOUND = "not_found"
UNAVAILABLE = "unavailable"
TIMEOUT = "timeout"
QUERY = "query"


class PrometheusError(Exception):
    kind = QUERY


class PrometheusQueryError(PrometheusError):
    kind = QUERY


class PrometheusConnectionError(PrometheusError):
    kind = UNAVAILABLE


class PrometheusTimeoutError(PrometheusConnectionError):
    kind = TIMEOUT


class PrometheusAuthError(PrometheusError):
    kind = UNAUTHENTICATED


class PrometheusPermissionError(PrometheusError):
    kind = PERMISSION_DENIED


class PrometheusNotFoundError(PrometheusError):
    kind = NOT_FOUND


_STATUS_ERRORS = {
    401: PrometheusAuthError,
    403: PrometheusPermissionError,
    404: PrometheusNotFoundError,
}


def _error_for_status(status_code: int, text: str) -> PrometheusError:
    message = f"prometheus returned status {status_code}: {text[:200]}"
    if status_code in _STATUS_ERRORS:
        return _STATUS_ERRORS[status_code](message)
    if status_code >= 500 or status_code == 429:
        return PrometheusConnectionError(message)
    return PrometheusQueryError(message)


# =============================================================================
# Metric kinds
# =============================================================================
CPU_REQUEST = "cpu_request"
MEMORY_REQUEST = "memory_request"
CPU_USAGE = "cpu_usage"
MEMORY_USAGE = "memory_usage"
AUTOSCALER_CPU = "autoscaler_cpu"
AUTOSCALER_MEMORY = "autoscaler_memory"
POD_NETWORK = "pod_network"
POD_CPU = "pod_cpu"
CLUSTER_INFO = "cluster_info"

VPA_TARGET_METRIC = "kube_verticalpodautoscaler_status_recommendation_containerrecommendations_target"


@dataclass(frozen=True)
class MetricQuery:
    """Full identity of one telemetry read. Also the basis of its cache key."""
    project: str
    cluster: str
    namespace: Optional[str]
    workload: Optional[str]
    kind: str
    start: float
    end: float


def _selector(query: MetricQuery, workload_label: str = "pod", extra: str = "") -> str:
    parts = []
    if query.namespace and query.namespace != "all":
        parts.append(f'namespace="{query.namespace}"')
    if query.workload and query.workload != "all":
        if workload_label == "pod":
            parts.append(f'pod=~"{query.workload}-.*"')
        else:
            parts.append(f'{workload_label}="{query.workload}"')
    if extra:
        parts.append(extra)
    if not parts:
        return ""
    return "{" + ",".join(parts) + "}"


def build_promql(query: MetricQuery) -> str:
    """PromQL for a metric kind. Raises PrometheusQueryError for unknown kinds."""
    kind = query.kind
    pods = _selector(query)
    if kind in (CPU_REQUEST, MEMORY_REQUEST):
        resource = 'resource="cpu"' if kind == CPU_REQUEST else 'resource="memory"'
        return f'avg by (container) (kube_pod_container_resource_requests{_selector(query, extra=resource)})'
    if kind == CPU_USAGE:
        containers = _selector(query, extra='container!=""')
        return f'sum by (container, pod) (rate(container_cpu_usage_seconds_total{containers}[5m]))'
    if kind == MEMORY_USAGE:
        containers = _selector(query, extra='container!=""')
        return f'avg by (container, pod) (container_memory_working_set_bytes{containers})'
    if kind in (AUTOSCALER_CPU, AUTOSCALER_MEMORY):
        resource = 'resource="cpu"' if kind == AUTOSCALER_CPU else 'resource="memory"'
        target = _selector(query, workload_label="target_name", extra=resource)
        return f'avg by (container) ({VPA_TARGET_METRIC}{target})'
    if kind == POD_NETWORK:
        # owner_kind rides along so the workload type can be detected
        return (f'sum by (namespace, pod) (rate(container_network_receive_bytes_total{pods}[5m]))'
                f' * on (namespace, pod) group_left(owner_kind)'
                f' max by (namespace, pod, owner_kind) (kube_pod_owner{pods})')
    if kind == POD_CPU:
        return f'sum by (pod) (rate(container_cpu_usage_seconds_total{pods}[5m]))'
    if kind == CLUSTER_INFO:
        return 'up'
    raise PrometheusQueryError(f"unknown metric kind: {kind}")


class PrometheusTelemetry:
    """Telemetry client backed by the Prometheus HTTP API.

    Args:
        url: Prometheus base URL
        timeout: per-request timeout in seconds
        token: optional bearer token passed through as-is
        step: range query resolution
    """

    def __init__(self, url: str = PROMETHEUS_URL, timeout: int = PROMETHEUS_TIMEOUT_SECONDS,
                 token: Optional[str] = PROMETHEUS_BEARER_TOKEN, step: str = PROMETHEUS_STEP):
        self.url = url.rstrip('/')
        self.timeout = timeout
        self.token = token
        self.step = step

    def _headers(self) -> Dict[str, str]:
        if self.token:
            return {"Authorization": f"Bearer {self.token}"}
        return {}

    def _get(self, path: str, params: Dict[str, str]) -> List[Dict[str, Any]]:
        url = f"{self.url}{path}"
        try:
            r = requests.get(url, params=params, headers=self._headers(), timeout=self.timeout)
        except requests.Timeout as e:
            raise PrometheusTimeoutError(f"request timed out after {self.timeout}s: {e}")
        except requests.RequestException as e:
            raise PrometheusConnectionError(f"request failed: {e}")
        if r.status_code != 200:
            raise _error_for_status(r.status_code, r.text)
        try:
            data = r.json()
        except ValueError as e:
            raise PrometheusQueryError(f"invalid JSON from prometheus: {e}")
        if data.get("status") != "success":
            raise PrometheusQueryError(f"prometheus error: {data.get('error', data)}")
        return data.get("data", {}).get("result", []) or []

    def query_range(self, promql: str, start_ts: float, end_ts: float, step: Optional[str] = None) -> List[Dict[str, Any]]:
        """Query `/api/v1/query_range` and return the matrix result list."""
        params = {
            "query": promql,
            "start": str(start_ts),
            "end": str(end_ts),
            "step": step or self.step,
        }
        return self._get("/api/v1/query_range", params)

    def fetch(self, query: MetricQuery) -> List[Dict[str, Any]]:
        promql = build_promql(query)
        logger.debug(f"fetching {query.kind} for {query.namespace}/{query.workload}: {promql}")
        started = time.monotonic()
        result = self.query_range(promql, query.start, query.end)
        logger.debug(f"{query.kind} returned {len(result)} series in {time.monotonic() - started:.2f}s")
        return result
