"""
CPU:memory provisioning ratio checks.

Every sizing pair must stay between 1 GiB and 6.5 GiB of memory per vCPU.
Values are only ever raised, never lowered, to get back inside the bounds.
"""
import logging
import math

from config import MIN_MEMORY_GIB_PER_CPU, MAX_MEMORY_GIB_PER_CPU
from models import GIBIBYTE, RatioAdjustment, ResourceAmount

logger = logging.getLogger(__name__)

MEMORY_RAISED_REASON = "memory increased to maintain minimum 1:1 ratio"
CPU_RAISED_REASON = "cpu increased to maintain maximum 1:6.5 ratio"


def validate_ratio(cpu_cores: float, memory_bytes: float,
                   min_ratio: float = MIN_MEMORY_GIB_PER_CPU,
                   max_ratio: float = MAX_MEMORY_GIB_PER_CPU):
    """Return `(cpu_cores, memory_bytes, reason)` with the ratio brought into bounds.

    `reason` is None when nothing changed. A non-positive cpu value has no
    ratio and is returned untouched.
    """
    if cpu_cores is None or cpu_cores <= 0:
        return cpu_cores, memory_bytes, None

    memory_gib = memory_bytes / GIBIBYTE
    ratio = memory_gib / cpu_cores

    if ratio < min_ratio:
        adjusted_memory = cpu_cores * min_ratio * GIBIBYTE
        logger.debug(f"ratio 1:{ratio:.2f} below minimum, memory {memory_bytes:.0f} -> {adjusted_memory:.0f} bytes")
        return cpu_cores, adjusted_memory, MEMORY_RAISED_REASON
    if ratio > max_ratio:
        adjusted_cpu = memory_gib / max_ratio
        logger.debug(f"ratio 1:{ratio:.2f} above maximum, cpu {cpu_cores:.3f} -> {adjusted_cpu:.3f} cores")
        return adjusted_cpu, memory_bytes, CPU_RAISED_REASON
    return cpu_cores, memory_bytes, None


def validate_amount(amount: ResourceAmount) -> RatioAdjustment:
    """Ratio-validate a ResourceAmount.

    Raised values are rounded up to whole millicores / bytes so the result
    never falls back below the bound it was raised to.
    """
    if amount.cpu_millicores <= 0:
        return RatioAdjustment(adjusted_amount=amount, was_adjusted=False, reason=None)

    cpu, memory, reason = validate_ratio(amount.cpu_cores, amount.memory_bytes)
    if reason is None:
        return RatioAdjustment(adjusted_amount=amount, was_adjusted=False, reason=None)

    adjusted = ResourceAmount(
        cpu_millicores=max(amount.cpu_millicores, int(math.ceil(round(cpu * 1000, 6)))),
        memory_bytes=max(amount.memory_bytes, int(math.ceil(round(memory, 3)))),
    )
    return RatioAdjustment(adjusted_amount=adjusted, was_adjusted=True, reason=reason)


def ratio_of(amount: ResourceAmount) -> float:
    """GiB of memory per vCPU; inf when there is no cpu."""
    if amount.cpu_millicores <= 0:
        return float('inf')
    return amount.memory_gib / amount.cpu_cores
