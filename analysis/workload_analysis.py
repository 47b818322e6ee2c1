"""
Workload analysis: turn the raw series of one workload into a WorkloadMetrics.

Pure function of its inputs; all fetching happens in the orchestrator.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from analysis.cost import RateTable, monthly_cost, potential_savings
from analysis.efficiency import efficiency_score
from analysis.ratio import validate_amount
from analysis.recommendation import container_status, synthesize
from models import (
    AutoscalerRecommendation,
    ContainerDetail,
    ResourceAmount,
    WorkloadMetrics,
    WorkloadSpec,
)
from normalize import series as ts

logger = logging.getLogger(__name__)

Series = List[Dict[str, Any]]


@dataclass
class WorkloadSeries:
    """Raw telemetry for one workload, as returned by the telemetry client."""
    cpu_request: Series = field(default_factory=list)
    memory_request: Series = field(default_factory=list)
    cpu_usage: Series = field(default_factory=list)
    memory_usage: Series = field(default_factory=list)
    autoscaler_cpu: Series = field(default_factory=list)
    autoscaler_memory: Series = field(default_factory=list)


def current_requests(cpu_series: Series, memory_series: Series) -> Tuple[Dict[str, ResourceAmount], ResourceAmount, List[str]]:
    """Per-container and total current requests, ratio-validated.

    Containers reporting only one of cpu/memory are kept as-is; the ratio
    is only checked when both sides are known.
    """
    cpu = ts.per_container_latest(cpu_series, 'cpu')
    memory = ts.per_container_latest(memory_series, 'memory')
    adjustments: List[str] = []
    per_container: Dict[str, ResourceAmount] = {}

    names = list(dict.fromkeys(list(cpu) + list(memory)))
    for name in names:
        amount = ResourceAmount.of(cpu.get(name, 0), memory.get(name, 0))
        if amount.cpu_millicores and amount.memory_bytes:
            check = validate_amount(amount)
            if check.was_adjusted:
                adjustments.append(f"request {name}: {check.reason}")
                amount = check.adjusted_amount
        per_container[name] = amount

    total = ResourceAmount()
    for amount in per_container.values():
        total = total + amount
    if total.cpu_millicores and total.memory_bytes:
        check = validate_amount(total)
        if check.was_adjusted:
            adjustments.append(f"request total: {check.reason}")
            total = check.adjusted_amount
    return per_container, total, adjustments


def autoscaler_recommendation(cpu_series: Series, memory_series: Series) -> AutoscalerRecommendation:
    return AutoscalerRecommendation(
        cpu_per_container=ts.per_container_raw_latest(cpu_series),
        memory_per_container=ts.per_container_raw_latest(memory_series),
    )


def analyze_workload(spec: WorkloadSpec, raw: WorkloadSeries, replica_count: int,
                     workload_type: str, rates: RateTable) -> WorkloadMetrics:
    requests, current_request, request_adjustments = current_requests(raw.cpu_request, raw.memory_request)

    current_usage = ResourceAmount.of(
        ts.latest_value(raw.cpu_usage) * 1000,
        ts.latest_value(raw.memory_usage),
    )

    autoscaler = autoscaler_recommendation(raw.autoscaler_cpu, raw.autoscaler_memory)
    if not autoscaler.available:
        logger.info(f"{spec.namespace}/{spec.name}: no autoscaler data, using usage-based sizing")

    rec = synthesize(
        autoscaler=autoscaler,
        cpu_usage=ts.per_container_values(raw.cpu_usage),
        memory_usage=ts.per_container_values(raw.memory_usage),
        requests=requests,
        current_request=current_request,
        current_usage=current_usage,
        prior_adjustments=request_adjustments,
    )

    details: Dict[str, ContainerDetail] = {}
    for name, c in rec.per_container.items():
        current = requests.get(name, ResourceAmount())
        details[name] = ContainerDetail(
            current=current,
            recommended=c.amount,
            status=container_status(current, c.amount),
            source=c.source,
        )

    adjustments = list(request_adjustments)
    adjustments.extend(f"recommendation {name}: {reason}" for name, reason in rec.container_adjustments.items())
    if rec.aggregate_adjustment:
        adjustments.append(f"recommendation total: {rec.aggregate_adjustment}")

    savings = potential_savings(current_request, rec.total, rates)

    return WorkloadMetrics(
        name=spec.name,
        namespace=spec.namespace,
        type=workload_type or spec.type,
        replica_count=replica_count,
        current_request=current_request,
        current_usage=current_usage,
        current_limit=ResourceAmount.of(spec.cpu_limit_millicores, spec.memory_limit_bytes),
        recommended_request=rec.total,
        efficiency_score=efficiency_score(current_usage, current_request),
        monthly_cost=monthly_cost(current_request, replica_count, rates),
        potential_monthly_savings=savings,
        total_potential_monthly_savings=round(savings * max(0, replica_count), rates.currency_decimals),
        recommendation_text=rec.text,
        per_container_detail=details,
        autoscaler_enabled=autoscaler.available,
        ratio_adjustments=adjustments,
    )
