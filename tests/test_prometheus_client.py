"""
Tests for Prometheus client module
"""
import pytest
from unittest.mock import patch, MagicMock
import requests

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from metrics import prometheus_client as prom
from metrics.prometheus_client import (
    MetricQuery,
    PrometheusAuthError,
    PrometheusConnectionError,
    PrometheusError,
    PrometheusNotFoundError,
    PrometheusPermissionError,
    PrometheusQueryError,
    PrometheusTelemetry,
    PrometheusTimeoutError,
    build_promql,
)


def _query(kind, namespace="shop", workload="cart"):
    return MetricQuery("proj", "prod", namespace, workload, kind, 1000.0, 4600.0)


def _response(status_code=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    resp.json.return_value = payload
    return resp


class TestPrometheusError:
    """Tests for PrometheusError exception classes"""

    def test_hierarchy(self):
        assert issubclass(PrometheusConnectionError, PrometheusError)
        assert issubclass(PrometheusTimeoutError, PrometheusConnectionError)
        assert issubclass(PrometheusAuthError, PrometheusError)

    def test_kinds(self):
        assert PrometheusAuthError("x").kind == prom.UNAUTHENTICATED
        assert PrometheusPermissionError("x").kind == prom.PERMISSION_DENIED
        assert PrometheusNotFoundError("x").kind == prom.NOT_FOUND
        assert PrometheusConnectionError("x").kind == prom.UNAVAILABLE
        assert PrometheusTimeoutError("x").kind == prom.TIMEOUT
        assert PrometheusQueryError("x").kind == prom.QUERY


class TestBuildPromql:

    def test_usage_scoped_to_workload_pods(self):
        promql = build_promql(_query(prom.CPU_USAGE))
        assert 'namespace="shop"' in promql
        assert 'pod=~"cart-.*"' in promql
        assert 'container!=""' in promql
        assert promql.startswith('sum by (container, pod) (rate(container_cpu_usage_seconds_total')

    def test_requests_by_resource(self):
        assert 'resource="memory"' in build_promql(_query(prom.MEMORY_REQUEST))
        assert 'resource="cpu"' in build_promql(_query(prom.CPU_REQUEST))

    def test_autoscaler_uses_target_name(self):
        promql = build_promql(_query(prom.AUTOSCALER_CPU))
        assert prom.VPA_TARGET_METRIC in promql
        assert 'target_name="cart"' in promql

    def test_pod_network_carries_owner_kind(self):
        promql = build_promql(_query(prom.POD_NETWORK))
        assert 'group_left(owner_kind)' in promql
        assert 'kube_pod_owner' in promql

    def test_unscoped_selector(self):
        promql = build_promql(_query(prom.POD_CPU, namespace=None, workload=None))
        assert promql == 'sum by (pod) (rate(container_cpu_usage_seconds_total[5m]))'

    def test_cluster_info(self):
        assert build_promql(_query(prom.CLUSTER_INFO)) == 'up'

    def test_unknown_kind(self):
        with pytest.raises(PrometheusQueryError):
            build_promql(_query("bogus"))


class TestPrometheusTelemetry:

    @patch('metrics.prometheus_client.requests.get')
    def test_fetch_success(self, mock_get, mock_prometheus_response):
        mock_get.return_value = _response(payload=mock_prometheus_response)
        client = PrometheusTelemetry(url="http://prom:9090/", timeout=5, token=None, step="30s")

        result = client.fetch(_query(prom.CPU_USAGE))

        assert result == mock_prometheus_response["data"]["result"]
        args, kwargs = mock_get.call_args
        assert args[0] == "http://prom:9090/api/v1/query_range"
        assert kwargs["timeout"] == 5
        assert kwargs["params"]["step"] == "30s"
        assert kwargs["params"]["start"] == "1000.0"
        assert "Authorization" not in kwargs["headers"]

    @patch('metrics.prometheus_client.requests.get')
    def test_bearer_token_sent(self, mock_get, mock_prometheus_response):
        mock_get.return_value = _response(payload=mock_prometheus_response)
        PrometheusTelemetry(url="http://prom:9090", token="abc").fetch(_query(prom.CPU_USAGE))
        assert mock_get.call_args[1]["headers"] == {"Authorization": "Bearer abc"}

    @pytest.mark.parametrize("status,error", [
        (401, PrometheusAuthError),
        (403, PrometheusPermissionError),
        (404, PrometheusNotFoundError),
        (503, PrometheusConnectionError),
        (429, PrometheusConnectionError),
        (400, PrometheusQueryError),
    ])
    @patch('metrics.prometheus_client.requests.get')
    def test_status_mapping(self, mock_get, status, error):
        mock_get.return_value = _response(status_code=status, text="nope")
        with pytest.raises(error):
            PrometheusTelemetry(url="http://prom:9090").fetch(_query(prom.CPU_USAGE))

    @patch('metrics.prometheus_client.requests.get')
    def test_timeout(self, mock_get):
        mock_get.side_effect = requests.Timeout("slow")
        with pytest.raises(PrometheusTimeoutError) as exc:
            PrometheusTelemetry(url="http://prom:9090").fetch(_query(prom.CPU_USAGE))
        assert exc.value.kind == prom.TIMEOUT

    @patch('metrics.prometheus_client.requests.get')
    def test_connection_error(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(PrometheusConnectionError) as exc:
            PrometheusTelemetry(url="http://prom:9090").fetch(_query(prom.CPU_USAGE))
        assert exc.value.kind == prom.UNAVAILABLE

    @patch('metrics.prometheus_client.requests.get')
    def test_error_status_in_body(self, mock_get):
        mock_get.return_value = _response(payload={"status": "error", "error": "parse error"})
        with pytest.raises(PrometheusQueryError):
            PrometheusTelemetry(url="http://prom:9090").fetch(_query(prom.CPU_USAGE))

    @patch('metrics.prometheus_client.requests.get')
    def test_invalid_json(self, mock_get):
        resp = _response()
        resp.json.side_effect = ValueError("no json")
        mock_get.return_value = resp
        with pytest.raises(PrometheusQueryError):
            PrometheusTelemetry(url="http://prom:9090").fetch(_query(prom.CPU_USAGE))

    @patch('metrics.prometheus_client.requests.get')
    def test_empty_result(self, mock_get):
        mock_get.return_value = _response(payload={"status": "success", "data": {"result": []}})
        assert PrometheusTelemetry(url="http://prom:9090").fetch(_query(prom.CPU_USAGE)) == []
