import math
from typing import List, Union

MEBIBYTE = 1024 * 1024
GIBIBYTE = 1024 * MEBIBYTE

CPU_STEP_MILLICORES = 10
MEMORY_STEP_BYTES = 16 * MEBIBYTE

# Kubernetes quantity suffixes. Binary suffixes are checked before decimal ones
# so that "Mi" is not read as "M" followed by garbage.
_MEMORY_SUFFIXES = [
    ('ki', 1024),
    ('mi', 1024 ** 2),
    ('gi', 1024 ** 3),
    ('ti', 1024 ** 4),
    ('k', 1000),
    ('m', 1000 ** 2),
    ('g', 1000 ** 3),
    ('t', 1000 ** 4),
]


def round_cpu_millicores(millicores: float) -> int:
    """Round CPU up to the next 10m increment, never below 10m."""
    if millicores is None or millicores != millicores:
        millicores = 0
    # float noise such as 80.00000000000001 must not push a value up a step
    stepped = int(math.ceil(round(millicores, 6) / CPU_STEP_MILLICORES)) * CPU_STEP_MILLICORES
    return max(CPU_STEP_MILLICORES, stepped)


def round_memory_bytes(memory_bytes: float) -> int:
    """Round memory up to the next 16Mi increment, never below 16Mi."""
    if memory_bytes is None or memory_bytes != memory_bytes:
        memory_bytes = 0
    stepped = int(math.ceil(round(memory_bytes) / MEMORY_STEP_BYTES)) * MEMORY_STEP_BYTES
    return max(MEMORY_STEP_BYTES, stepped)


def floor_percentile(samples: List[float], fraction: float) -> float:
    """Value at index floor(fraction * n) of the ascending samples.

    `fraction` is in [0, 1]. The index is clamped to the last element so that
    fraction=1.0 returns the maximum. Returns 0.0 for no samples.
    """
    if not samples:
        return 0.0
    if not (0 <= fraction <= 1):
        raise ValueError("fraction must be between 0 and 1")
    s = sorted(samples)
    idx = min(int(math.floor(fraction * len(s))), len(s) - 1)
    return float(s[idx])


def _to_count(amount: float) -> int:
    """Non-negative whole number; ValueError for NaN or infinity."""
    if not math.isfinite(amount):
        raise ValueError(f"quantity must be finite, got {amount}")
    return max(0, int(round(amount)))


def parse_cpu_quantity(value: Union[str, int, float, None]) -> int:
    """Parse a CPU quantity into millicores: '250m' -> 250, '1.5' -> 1500.

    Bare numbers are taken as millicores, the same way the request payload
    carries them.
    """
    if value is None or value == '':
        return 0
    if isinstance(value, (int, float)):
        return _to_count(float(value))
    s = str(value).strip().lower()
    if s.endswith('m'):
        return _to_count(float(s[:-1]))
    return _to_count(float(s) * 1000)


def parse_memory_quantity(value: Union[str, int, float, None]) -> int:
    """Parse a memory quantity into bytes: '512Mi', '1G', '1048576'."""
    if value is None or value == '':
        return 0
    if isinstance(value, (int, float)):
        return _to_count(float(value))
    s = str(value).strip().lower()
    for suffix, multiplier in _MEMORY_SUFFIXES:
        if s.endswith(suffix):
            return _to_count(float(s[:-len(suffix)]) * multiplier)
    return _to_count(float(s))


def percent_change(new: float, old: float) -> float:
    if old == 0:
        raise ValueError("old must not be zero")
    return (new - old) / old * 100.0
