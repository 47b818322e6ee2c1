"""Data model shared by the sizing engine, the orchestrator and the API.

All records are built fresh for each batch; nothing here is persisted.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

MEBIBYTE = 1024 * 1024
GIBIBYTE = 1024 * 1024 * 1024


@dataclass(frozen=True)
class TimeSeriesPoint:
    timestamp: float
    value: float


@dataclass(frozen=True)
class ResourceAmount:
    """CPU in millicores and memory in bytes. Never negative."""

    cpu_millicores: int = 0
    memory_bytes: int = 0

    @classmethod
    def of(cls, cpu_millicores: float, memory_bytes: float) -> "ResourceAmount":
        return cls(max(0, int(round(cpu_millicores or 0))), max(0, int(round(memory_bytes or 0))))

    @property
    def cpu_cores(self) -> float:
        return self.cpu_millicores / 1000.0

    @property
    def memory_gib(self) -> float:
        return self.memory_bytes / GIBIBYTE

    @property
    def memory_mib(self) -> float:
        return self.memory_bytes / MEBIBYTE

    def is_zero(self) -> bool:
        return self.cpu_millicores == 0 and self.memory_bytes == 0

    def __add__(self, other: "ResourceAmount") -> "ResourceAmount":
        return ResourceAmount(self.cpu_millicores + other.cpu_millicores,
                              self.memory_bytes + other.memory_bytes)

    def to_dict(self) -> Dict[str, int]:
        return {"cpuMillicores": self.cpu_millicores, "memoryBytes": self.memory_bytes}


@dataclass(frozen=True)
class RatioAdjustment:
    adjusted_amount: ResourceAmount
    was_adjusted: bool = False
    reason: Optional[str] = None


@dataclass
class AutoscalerRecommendation:
    """Per-container autoscaler targets: cpu in cores, memory in bytes."""

    cpu_per_container: Dict[str, float] = field(default_factory=dict)
    memory_per_container: Dict[str, float] = field(default_factory=dict)

    @property
    def available(self) -> bool:
        return bool(self.cpu_per_container) or bool(self.memory_per_container)

    @classmethod
    def unavailable(cls) -> "AutoscalerRecommendation":
        return cls()


@dataclass
class ContainerDetail:
    current: ResourceAmount
    recommended: ResourceAmount
    status: str = "unknown"
    source: str = "default"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current": self.current.to_dict(),
            "recommended": self.recommended.to_dict(),
            "status": self.status,
            "source": self.source,
        }


@dataclass
class WorkloadSpec:
    name: str
    namespace: str = "default"
    type: str = "Unknown"
    replicas: int = 1
    cpu_limit_millicores: int = 0
    memory_limit_bytes: int = 0


@dataclass
class BatchRequest:
    project_id: str
    cluster_name: str
    time_range_hours: int = 1
    namespace: Optional[str] = None
    workload_name: Optional[str] = None
    workloads: List[WorkloadSpec] = field(default_factory=list)


@dataclass
class WorkloadMetrics:
    name: str
    namespace: str
    type: str = "Unknown"
    replica_count: int = 0
    current_request: ResourceAmount = field(default_factory=ResourceAmount)
    current_usage: ResourceAmount = field(default_factory=ResourceAmount)
    current_limit: ResourceAmount = field(default_factory=ResourceAmount)
    recommended_request: ResourceAmount = field(default_factory=ResourceAmount)
    efficiency_score: int = 0
    monthly_cost: float = 0.0
    potential_monthly_savings: float = 0.0
    total_potential_monthly_savings: float = 0.0
    recommendation_text: List[str] = field(default_factory=list)
    per_container_detail: Dict[str, ContainerDetail] = field(default_factory=dict)
    autoscaler_enabled: bool = False
    ratio_adjustments: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def failed(cls, name: str, namespace: str, error: str, type: str = "Unknown") -> "WorkloadMetrics":
        return cls(name=name, namespace=namespace, type=type, error=error)

    @property
    def ok(self) -> bool:
        return not self.error

    def to_dict(self) -> Dict[str, Any]:
        if self.error:
            # Error items carry no numeric fields
            return {
                "name": self.name,
                "namespace": self.namespace,
                "type": self.type,
                "status": "error",
                "error": self.error,
            }
        return {
            "name": self.name,
            "namespace": self.namespace,
            "type": self.type,
            "status": "running",
            "replicas": self.replica_count,
            "currentRequest": self.current_request.to_dict(),
            "currentUsage": self.current_usage.to_dict(),
            "currentLimit": self.current_limit.to_dict(),
            "recommendedRequest": self.recommended_request.to_dict(),
            "efficiency": self.efficiency_score,
            "monthlyCost": self.monthly_cost,
            "potentialMonthlySavings": self.potential_monthly_savings,
            "totalPotentialMonthlySavings": self.total_potential_monthly_savings,
            "recommendations": list(self.recommendation_text),
            "containers": {name: d.to_dict() for name, d in self.per_container_detail.items()},
            "autoscalerEnabled": self.autoscaler_enabled,
            "ratioAdjustments": list(self.ratio_adjustments),
        }
