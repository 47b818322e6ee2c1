"""
Request validation for batch metrics requests.

Rejects malformed identifiers and out-of-range time ranges before any engine
work happens. Errors carry a machine-readable `kind` plus a human message.
"""
import re
from typing import Any, Dict, List, Optional

from models import BatchRequest, WorkloadSpec
from normalize.math import parse_cpu_quantity, parse_memory_quantity

IDENTIFIER_RE = re.compile(r'^[a-z0-9-]+$')

MIN_TIME_RANGE_HOURS = 1
MAX_TIME_RANGE_HOURS = 168


class RequestValidationError(Exception):
    """Raised for user-correctable request problems"""

    def __init__(self, kind: str, error: str, details: str):
        super().__init__(f"{error}: {details}")
        self.kind = kind
        self.error = error
        self.details = details

    def to_dict(self) -> Dict[str, str]:
        return {"error": self.error, "kind": self.kind, "details": self.details}


def _check_identifier(value: Any, field_name: str, kind: str, label: str) -> None:
    if not isinstance(value, str) or not IDENTIFIER_RE.match(value):
        raise RequestValidationError(
            kind,
            f"Invalid {field_name} format",
            f"{label} must contain only lowercase letters, numbers, and hyphens",
        )


def _parse_time_range(value: Any) -> int:
    if value is None or value == '':
        return MIN_TIME_RANGE_HOURS
    error = RequestValidationError(
        "invalid_time_range",
        "Invalid timeRange",
        f"Time range must be an integer between {MIN_TIME_RANGE_HOURS} and {MAX_TIME_RANGE_HOURS} hours",
    )
    if isinstance(value, bool):
        raise error
    try:
        hours = float(value)
    except (TypeError, ValueError, OverflowError):
        raise error
    # NaN fails the range check
    if not (MIN_TIME_RANGE_HOURS <= hours <= MAX_TIME_RANGE_HOURS) or not hours.is_integer():
        raise error
    return int(hours)


def _parse_workload(item: Any, index: int, default_namespace: Optional[str] = None) -> WorkloadSpec:
    if not isinstance(item, dict):
        raise RequestValidationError("invalid_workloads", "Invalid workloads",
                                     f"workloads[{index}] must be an object")
    name = item.get('name')
    namespace = item.get('namespace') or default_namespace or 'default'
    _check_identifier(name, "workloads[].name", "invalid_workloads", f"workloads[{index}].name")
    _check_identifier(namespace, "workloads[].namespace", "invalid_workloads", f"workloads[{index}].namespace")

    replicas = item.get('replicas', 1)
    if isinstance(replicas, bool) or not isinstance(replicas, int) or replicas < 0:
        raise RequestValidationError("invalid_workloads", "Invalid workloads",
                                     f"workloads[{index}].replicas must be a non-negative integer")
    try:
        cpu_limit = parse_cpu_quantity(item.get('cpuLimit'))
        memory_limit = parse_memory_quantity(item.get('memoryLimit'))
    except (TypeError, ValueError, OverflowError):
        raise RequestValidationError("invalid_workloads", "Invalid workloads",
                                     f"workloads[{index}] has an unparsable cpuLimit or memoryLimit")

    return WorkloadSpec(
        name=name,
        namespace=namespace,
        type=str(item.get('type') or 'Unknown'),
        replicas=replicas,
        cpu_limit_millicores=cpu_limit,
        memory_limit_bytes=memory_limit,
    )


def validate_metrics_request(payload: Any) -> BatchRequest:
    """Validate a metrics request body and build a BatchRequest.

    Raises:
        RequestValidationError: on the first problem found
    """
    if not isinstance(payload, dict):
        raise RequestValidationError("missing_parameters", "Invalid request body",
                                     "Request body must be a JSON object")

    project_id = payload.get('projectId')
    cluster_name = payload.get('clusterName')
    if not project_id or not cluster_name:
        raise RequestValidationError(
            "missing_parameters",
            "Missing required parameters: projectId and clusterName",
            "Both projectId and clusterName are required to fetch metrics",
        )
    _check_identifier(project_id, "projectId", "invalid_project_id", "Project ID")
    _check_identifier(cluster_name, "clusterName", "invalid_cluster_name", "Cluster name")

    namespace = payload.get('namespace') or None
    workload_name = payload.get('workloadName') or None
    if namespace is not None:
        _check_identifier(namespace, "namespace", "invalid_namespace", "Namespace")
    if workload_name is not None:
        _check_identifier(workload_name, "workloadName", "invalid_workload_name", "Workload name")

    time_range = _parse_time_range(payload.get('timeRange'))

    raw_workloads = payload.get('workloads') or []
    if not isinstance(raw_workloads, list):
        raise RequestValidationError("invalid_workloads", "Invalid workloads", "workloads must be a list")
    workloads: List[WorkloadSpec] = [_parse_workload(item, i, namespace) for i, item in enumerate(raw_workloads)]

    if not workloads and workload_name:
        workloads = [WorkloadSpec(name=workload_name, namespace=namespace or 'default')]

    if not workloads:
        raise RequestValidationError(
            "no_workloads",
            "No workloads specified",
            "Please provide either a workloadName or a workloads array in the request body",
        )

    return BatchRequest(
        project_id=project_id,
        cluster_name=cluster_name,
        time_range_hours=time_range,
        namespace=namespace,
        workload_name=workload_name,
        workloads=workloads,
    )
