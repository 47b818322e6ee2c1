"""
Recommendation synthesis.

Merges autoscaler targets with usage-derived fallback sizing per container,
applies the rounding policy and the CPU:memory ratio bounds, sums the
containers into a workload total and renders the guidance text.

Per container and per resource the value comes from the first available of:
  1. autoscaler target
  2. usage (CPU: P90 x 1.15, memory: max x 1.20)
  3. the container's current request
  4. the floor default (10m / 16Mi)
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from analysis.efficiency import utilization
from analysis.ratio import validate_amount
from config import CPU_USAGE_PERCENTILE, CPU_USAGE_BUFFER, MEMORY_USAGE_BUFFER
from models import AutoscalerRecommendation, ResourceAmount
from normalize.math import (
    CPU_STEP_MILLICORES,
    MEMORY_STEP_BYTES,
    floor_percentile,
    percent_change,
    round_cpu_millicores,
    round_memory_bytes,
)

logger = logging.getLogger(__name__)

FLOOR_DEFAULT = ResourceAmount(CPU_STEP_MILLICORES, MEMORY_STEP_BYTES)

CHANGE_THRESHOLD_PERCENT = 20.0
LOW_UTILIZATION = 0.3
HIGH_UTILIZATION = 0.8

RATIO_NOTE = "Note: CPU:Memory ratio validation applied (between 1:1 and 1:6.5)"
AUTOSCALER_PENDING_NOTE = (
    "Autoscaler recommendations not yet available - allow more time for autoscaler data collection"
)
WELL_OPTIMIZED_NOTE = "Resources appear well optimized based on usage patterns"
ENABLE_AUTOSCALER_HINT = "Enable the vertical pod autoscaler for per-container recommendations"


@dataclass
class ContainerRecommendation:
    amount: ResourceAmount
    cpu_source: str
    memory_source: str
    adjustment: Optional[str] = None

    @property
    def source(self) -> str:
        if self.cpu_source == self.memory_source:
            return self.cpu_source
        return f"{self.cpu_source}/{self.memory_source}"


@dataclass
class Recommendation:
    total: ResourceAmount
    per_container: Dict[str, ContainerRecommendation] = field(default_factory=dict)
    aggregate_adjustment: Optional[str] = None
    autoscaler_available: bool = False
    text: List[str] = field(default_factory=list)

    @property
    def container_adjustments(self) -> Dict[str, str]:
        return {name: rec.adjustment for name, rec in self.per_container.items() if rec.adjustment}


def round_amount(amount: ResourceAmount) -> ResourceAmount:
    return ResourceAmount(round_cpu_millicores(amount.cpu_millicores), round_memory_bytes(amount.memory_bytes))


def _validated(amount: ResourceAmount):
    """Round, ratio-validate and re-round when the validator moved a value."""
    rounded = round_amount(amount)
    check = validate_amount(rounded)
    if not check.was_adjusted:
        return rounded, None
    return round_amount(check.adjusted_amount), check.reason


def _container_order(*mappings: Dict[str, object]) -> List[str]:
    seen: Dict[str, None] = {}
    for mapping in mappings:
        for name in mapping:
            seen.setdefault(name, None)
    return list(seen)


def _container_cpu(name, autoscaler, cpu_usage, requests):
    if name in autoscaler.cpu_per_container:
        return round(autoscaler.cpu_per_container[name] * 1000), "autoscaler"
    samples = cpu_usage.get(name)
    if samples:
        return floor_percentile(samples, CPU_USAGE_PERCENTILE) * CPU_USAGE_BUFFER * 1000, "usage"
    current = requests.get(name)
    if current is not None and current.cpu_millicores > 0:
        return current.cpu_millicores, "request"
    return FLOOR_DEFAULT.cpu_millicores, "default"


def _container_memory(name, autoscaler, memory_usage, requests):
    if name in autoscaler.memory_per_container:
        return round(autoscaler.memory_per_container[name]), "autoscaler"
    samples = memory_usage.get(name)
    if samples:
        return max(samples) * MEMORY_USAGE_BUFFER, "usage"
    current = requests.get(name)
    if current is not None and current.memory_bytes > 0:
        return current.memory_bytes, "request"
    return FLOOR_DEFAULT.memory_bytes, "default"


def synthesize(autoscaler: AutoscalerRecommendation,
               cpu_usage: Dict[str, List[float]],
               memory_usage: Dict[str, List[float]],
               requests: Dict[str, ResourceAmount],
               current_request: ResourceAmount,
               current_usage: ResourceAmount,
               prior_adjustments: Optional[List[str]] = None) -> Recommendation:
    """Build the sizing recommendation for one workload.

    `cpu_usage` / `memory_usage` map container -> raw samples (cores / bytes),
    `requests` maps container -> current request. `prior_adjustments` are the
    ratio adjustments already applied to the current requests; they only
    influence the note in the text.
    """
    per_container: Dict[str, ContainerRecommendation] = {}
    names = _container_order(autoscaler.cpu_per_container, autoscaler.memory_per_container,
                             requests, cpu_usage, memory_usage)

    for name in names:
        cpu, cpu_source = _container_cpu(name, autoscaler, cpu_usage, requests)
        memory, memory_source = _container_memory(name, autoscaler, memory_usage, requests)
        amount, reason = _validated(ResourceAmount.of(cpu, memory))
        if reason:
            logger.info(f"container {name}: {reason}")
        per_container[name] = ContainerRecommendation(amount, cpu_source, memory_source, reason)

    if per_container:
        summed = ResourceAmount()
        for rec in per_container.values():
            summed = summed + rec.amount
    elif not current_request.is_zero():
        summed = current_request
    else:
        summed = FLOOR_DEFAULT

    total, aggregate_reason = _validated(summed)
    if aggregate_reason:
        logger.info(f"aggregate recommendation: {aggregate_reason}")

    rec = Recommendation(
        total=total,
        per_container=per_container,
        aggregate_adjustment=aggregate_reason,
        autoscaler_available=autoscaler.available,
    )
    rec.text = render_text(rec, current_request, current_usage, prior_adjustments or [])
    return rec


def _change_line(resource: str, recommended: float, current: float) -> Optional[str]:
    if current <= 0:
        return None
    change = percent_change(recommended, current)
    if abs(change) <= CHANGE_THRESHOLD_PERCENT:
        return None
    action = "increase" if change > 0 else "reduce"
    return f"Suggests {action} total {resource} by {round(abs(change))}%"


def _usage_advisory(resource: str, usage: float, request: float) -> Optional[str]:
    util = utilization(usage, request)
    if util is None:
        return None
    if util < LOW_UTILIZATION:
        return f"Consider reducing {resource} request - low utilization detected"
    if util > HIGH_UTILIZATION:
        return f"Consider increasing {resource} request - high utilization detected"
    return None


def render_text(rec: Recommendation, current_request: ResourceAmount,
                current_usage: ResourceAmount, prior_adjustments: List[str]) -> List[str]:
    lines: List[str] = []

    if rec.per_container:
        lines.append("CPU recommendations by container:")
        for name, c in rec.per_container.items():
            lines.append(f"  - {name}: {c.amount.cpu_millicores}m CPU")
        lines.append(f"  -> Total recommended: {rec.total.cpu_millicores}m "
                     f"(current: {current_request.cpu_millicores}m)")

        lines.append("Memory recommendations by container:")
        for name, c in rec.per_container.items():
            lines.append(f"  - {name}: {round(c.amount.memory_mib)}Mi memory")
        lines.append(f"  -> Total recommended: {round(rec.total.memory_mib)}Mi "
                     f"(current: {round(current_request.memory_mib)}Mi)")

    for line in (
        _change_line("CPU", rec.total.cpu_millicores, current_request.cpu_millicores),
        _change_line("memory", rec.total.memory_bytes, current_request.memory_bytes),
    ):
        if line:
            lines.append(line)

    if prior_adjustments or rec.container_adjustments or rec.aggregate_adjustment:
        lines.append(RATIO_NOTE)

    if not rec.autoscaler_available:
        lines.append(AUTOSCALER_PENDING_NOTE)
        advisories = [a for a in (
            _usage_advisory("CPU", current_usage.cpu_millicores, current_request.cpu_millicores),
            _usage_advisory("memory", current_usage.memory_bytes, current_request.memory_bytes),
        ) if a]
        lines.extend(advisories or [WELL_OPTIMIZED_NOTE])
        lines.append(ENABLE_AUTOSCALER_HINT)

    return lines


def container_status(current: ResourceAmount, recommended: ResourceAmount) -> str:
    """Classify a container by how far the recommendation moves its request."""
    if current.cpu_millicores <= 0 and current.memory_bytes <= 0:
        return "unknown"
    changes = []
    if current.cpu_millicores > 0:
        changes.append(percent_change(recommended.cpu_millicores, current.cpu_millicores))
    if current.memory_bytes > 0:
        changes.append(percent_change(recommended.memory_bytes, current.memory_bytes))
    if any(c > CHANGE_THRESHOLD_PERCENT for c in changes):
        return "underprovisioned"
    if any(c < -CHANGE_THRESHOLD_PERCENT for c in changes):
        return "overprovisioned"
    return "ok"
