"""
Test fixtures and configuration for pytest
"""
import sys
import threading
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from analysis.cost import RateTable
from metrics import prometheus_client as prom
from models import GIBIBYTE, MEBIBYTE

BASE_TS = 1704355200


def series(values, **labels):
    """One matrix entry: `values` is a list of floats, one point per minute."""
    return {
        "metric": dict(labels),
        "values": [[BASE_TS + i * 60, str(v)] for i, v in enumerate(values)],
    }


class FakeTelemetry:
    """Telemetry double keyed by (workload, kind).

    A value in `responses` is either the list of series to return or an
    exception instance to raise. Unknown keys return []. `delays` maps
    (workload, kind) to seconds to block before answering.
    """

    def __init__(self, responses=None, delays=None):
        self.responses = dict(responses or {})
        self.delays = dict(delays or {})
        self.calls = []
        self._lock = threading.Lock()
        self.release = threading.Event()

    def fetch(self, query):
        with self._lock:
            self.calls.append(query)
        key = (query.workload, query.kind)
        delay = self.delays.get(key)
        if delay:
            self.release.wait(delay)
        value = self.responses.get(key, [])
        if isinstance(value, Exception):
            raise value
        return value

    def kinds_for(self, workload):
        return [q.kind for q in self.calls if q.workload == workload]


def workload_responses(name, cpu_cores=0.2, memory_bytes=256 * MEBIBYTE,
                       request_cpu=0.5, request_memory=GIBIBYTE, pods=3, container="app"):
    """A healthy set of telemetry answers for one workload."""
    pod_names = [f"{name}-abc-{i}" for i in range(pods)]
    return {
        (name, prom.CPU_REQUEST): [series([request_cpu], container=container)],
        (name, prom.MEMORY_REQUEST): [series([request_memory], container=container)],
        (name, prom.CPU_USAGE): [series([cpu_cores, cpu_cores], container=container, pod=p) for p in pod_names],
        (name, prom.MEMORY_USAGE): [series([memory_bytes, memory_bytes], container=container, pod=p) for p in pod_names],
        (name, prom.POD_NETWORK): [series([100.0], pod=p, owner_kind="ReplicaSet") for p in pod_names],
    }


@pytest.fixture
def rates():
    return RateTable(cpu_per_vcpu_hour=0.031611, memory_per_gib_hour=0.004237,
                     hours_per_month=720, currency_decimals=2)


@pytest.fixture
def fake_telemetry():
    return FakeTelemetry()


@pytest.fixture
def mock_prometheus_response():
    """Mock Prometheus API response"""
    return {
        "status": "success",
        "data": {
            "resultType": "matrix",
            "result": [
                {
                    "metric": {"container": "app", "pod": "api-server-abc123"},
                    "values": [[1704355200, "0.5"], [1704355260, "0.6"]]
                }
            ]
        }
    }


@pytest.fixture
def temp_output_dir(tmp_path):
    """Temporary directory for test output files"""
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    return output_dir
