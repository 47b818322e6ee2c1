"""
Monthly cost projection from resource requests.

Rates are configuration, not invariants: the defaults are illustrative
on-demand prices and can be replaced through environment variables or a
YAML rate file (see config.load_rate_table).
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from config import load_rate_table
from models import ResourceAmount


@dataclass(frozen=True)
class RateTable:
    cpu_per_vcpu_hour: float
    memory_per_gib_hour: float
    hours_per_month: int = 24 * 30
    currency_decimals: int = 2

    @classmethod
    def from_config(cls, path: Optional[str] = None) -> "RateTable":
        rates: Dict[str, Any] = load_rate_table(path)
        return cls(
            cpu_per_vcpu_hour=float(rates["cpu_per_vcpu_hour"]),
            memory_per_gib_hour=float(rates["memory_per_gib_hour"]),
            hours_per_month=int(rates["hours_per_month"]),
            currency_decimals=int(rates["currency_decimals"]),
        )


def monthly_cost(request: ResourceAmount, replicas: int, rates: RateTable) -> float:
    """(cores * cpu_rate + GiB * memory_rate) * replicas * hours_per_month, rounded."""
    hourly = request.cpu_cores * rates.cpu_per_vcpu_hour + request.memory_gib * rates.memory_per_gib_hour
    return round(hourly * max(0, replicas) * rates.hours_per_month, rates.currency_decimals)


def potential_savings(current: ResourceAmount, recommended: ResourceAmount, rates: RateTable) -> float:
    """Per-replica monthly savings of moving to `recommended`; never negative."""
    delta = monthly_cost(current, 1, rates) - monthly_cost(recommended, 1, rates)
    return round(max(0.0, delta), rates.currency_decimals)
