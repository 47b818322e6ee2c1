from models import ResourceAmount


def _utilization_percent(usage: float, request: float) -> float:
    # No request counts as fully efficient rather than a division by zero
    if request <= 0:
        return 100.0
    return min(100.0, max(0.0, usage / request * 100.0))


def efficiency_score(usage: ResourceAmount, request: ResourceAmount) -> int:
    """Average of capped CPU and memory utilization against requests, 0..100."""
    cpu = _utilization_percent(usage.cpu_millicores, request.cpu_millicores)
    memory = _utilization_percent(usage.memory_bytes, request.memory_bytes)
    return int(min(100, max(0, round((cpu + memory) / 2))))


def utilization(usage: float, request: float):
    """Fraction of the request in use, or None when the request is unknown."""
    if request <= 0:
        return None
    return usage / request
