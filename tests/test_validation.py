"""
Tests for request validation
"""
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import MEBIBYTE
from validation import RequestValidationError, validate_metrics_request


def _payload(**overrides):
    payload = {
        "projectId": "my-project",
        "clusterName": "prod-1",
        "timeRange": 24,
        "workloads": [{"name": "cart", "namespace": "shop", "type": "Deployment", "replicas": 2}],
    }
    payload.update(overrides)
    return payload


def _kind(payload):
    with pytest.raises(RequestValidationError) as exc:
        validate_metrics_request(payload)
    return exc.value.kind


class TestValidRequests:

    def test_full_request(self):
        req = validate_metrics_request(_payload())
        assert req.project_id == "my-project"
        assert req.cluster_name == "prod-1"
        assert req.time_range_hours == 24
        assert req.workloads[0].name == "cart"
        assert req.workloads[0].replicas == 2

    def test_time_range_defaults_to_one_hour(self):
        req = validate_metrics_request(_payload(timeRange=None))
        assert req.time_range_hours == 1

    def test_time_range_numeric_string(self):
        assert validate_metrics_request(_payload(timeRange="168")).time_range_hours == 168

    def test_single_workload_from_name(self):
        req = validate_metrics_request(_payload(workloads=None, workloadName="cart"))
        assert len(req.workloads) == 1
        assert req.workloads[0].name == "cart"
        assert req.workloads[0].namespace == "default"

    def test_single_workload_uses_namespace(self):
        req = validate_metrics_request(_payload(workloads=[], workloadName="cart", namespace="shop"))
        assert req.workloads[0].namespace == "shop"

    def test_limits_parsed(self):
        req = validate_metrics_request(_payload(workloads=[
            {"name": "cart", "cpuLimit": "500m", "memoryLimit": "256Mi"}
        ]))
        assert req.workloads[0].cpu_limit_millicores == 500
        assert req.workloads[0].memory_limit_bytes == 256 * MEBIBYTE
        assert req.workloads[0].namespace == "default"

    def test_workload_namespace_falls_back_to_request_namespace(self):
        req = validate_metrics_request(_payload(namespace="shop", workloads=[
            {"name": "cart"},
            {"name": "web", "namespace": "front"},
        ]))
        assert req.workloads[0].namespace == "shop"
        assert req.workloads[1].namespace == "front"


class TestInvalidRequests:

    def test_missing_parameters(self):
        assert _kind({"projectId": "p"}) == "missing_parameters"
        assert _kind(None) == "missing_parameters"

    @pytest.mark.parametrize("value", ["My-Project", "my_project", "proj!", 42])
    def test_invalid_project_id(self, value):
        assert _kind(_payload(projectId=value)) == "invalid_project_id"

    def test_invalid_cluster_name(self):
        assert _kind(_payload(clusterName="Prod")) == "invalid_cluster_name"

    def test_invalid_namespace(self):
        assert _kind(_payload(namespace="kube_system")) == "invalid_namespace"

    def test_invalid_workload_name(self):
        assert _kind(_payload(workloadName="Cart")) == "invalid_workload_name"

    @pytest.mark.parametrize("value", [0, 169, -1, 1.5, "abc", True, float('nan')])
    def test_invalid_time_range(self, value):
        assert _kind(_payload(timeRange=value)) == "invalid_time_range"

    def test_invalid_workload_entries(self):
        assert _kind(_payload(workloads="cart")) == "invalid_workloads"
        assert _kind(_payload(workloads=["cart"])) == "invalid_workloads"
        assert _kind(_payload(workloads=[{"name": "Cart"}])) == "invalid_workloads"
        assert _kind(_payload(workloads=[{"name": "cart", "replicas": -1}])) == "invalid_workloads"
        assert _kind(_payload(workloads=[{"name": "cart", "cpuLimit": "fast"}])) == "invalid_workloads"

    @pytest.mark.parametrize("field", ["cpuLimit", "memoryLimit"])
    @pytest.mark.parametrize("value", [float('inf'), float('-inf'), float('nan'), "inf", 10 ** 400])
    def test_non_finite_limits(self, field, value):
        assert _kind(_payload(workloads=[{"name": "cart", field: value}])) == "invalid_workloads"

    def test_huge_time_range(self):
        assert _kind(_payload(timeRange=10 ** 400)) == "invalid_time_range"

    def test_no_workloads(self):
        assert _kind(_payload(workloads=[])) == "no_workloads"

    def test_error_payload(self):
        with pytest.raises(RequestValidationError) as exc:
            validate_metrics_request(_payload(clusterName="Prod"))
        body = exc.value.to_dict()
        assert body["kind"] == "invalid_cluster_name"
        assert body["error"] == "Invalid clusterName format"
        assert "lowercase" in body["details"]
