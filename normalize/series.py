"""Reduce Prometheus-shaped time series to scalars and per-container maps.

A series set is a list of `{"metric": {labels}, "values": [[ts, "v"], ...]}`
entries, the matrix shape returned by `query_range`. Nothing in this module
raises on malformed input: bad series and bad points are skipped and the
zero value for the requested shape is returned.
"""
from typing import Any, Dict, Iterable, List, Optional

from models import TimeSeriesPoint
from normalize.math import floor_percentile

CONTAINER_LABELS = ('container', 'container_name')
POD_LABELS = ('pod', 'pod_name')
UNKNOWN_CONTAINER = 'unknown'


def parse_points(res: Dict[str, Any]) -> List[TimeSeriesPoint]:
    """Parse one matrix entry into points, skipping bad ones."""
    if not isinstance(res, dict):
        return []
    values = res.get("values") or []
    parsed: List[TimeSeriesPoint] = []
    for point in values:
        try:
            ts_str, val_str = point
            ts = float(ts_str)
            val = float(val_str)
        except (TypeError, ValueError):
            continue
        if val != val or val in (float('inf'), float('-inf')):
            continue
        parsed.append(TimeSeriesPoint(ts, val))
    return parsed


def label(res: Dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    if not isinstance(res, dict):
        return None
    metric = res.get("metric") or {}
    if not isinstance(metric, dict):
        return None
    for key in keys:
        value = metric.get(key)
        if value:
            return value
    return None


def container_of(res: Dict[str, Any]) -> str:
    return label(res, CONTAINER_LABELS) or UNKNOWN_CONTAINER


def _latest_point(points: List[TimeSeriesPoint]) -> Optional[TimeSeriesPoint]:
    if not points:
        return None
    # points may arrive out of order
    return max(points, key=lambda p: p.timestamp)


def latest_value(series: Optional[List[Dict[str, Any]]]) -> float:
    """Value of the most recent point across every series in the set, 0.0 if empty."""
    latest: Optional[TimeSeriesPoint] = None
    for res in series or []:
        point = _latest_point(parse_points(res))
        if point is not None and (latest is None or point.timestamp > latest.timestamp):
            latest = point
    return latest.value if latest is not None else 0.0


def per_container_latest(series: Optional[List[Dict[str, Any]]], unit: str) -> Dict[str, int]:
    """Most recent value per container.

    `unit='cpu'` converts cores to millicores, `unit='memory'` rounds to
    whole bytes. Containers with no points are left out of the result.
    """
    result: Dict[str, int] = {}
    for name, value in per_container_raw_latest(series).items():
        if unit == 'cpu':
            result[name] = int(round(value * 1000))
        else:
            result[name] = int(round(value))
    return result


def per_container_raw_latest(series: Optional[List[Dict[str, Any]]]) -> Dict[str, float]:
    """Most recent value per container without unit conversion."""
    latest: Dict[str, TimeSeriesPoint] = {}
    for res in series or []:
        point = _latest_point(parse_points(res))
        if point is None:
            continue
        name = container_of(res)
        existing = latest.get(name)
        if existing is None or point.timestamp > existing.timestamp:
            latest[name] = point
    return {name: point.value for name, point in latest.items()}


def per_container_values(series: Optional[List[Dict[str, Any]]]) -> Dict[str, List[float]]:
    """All values grouped by container, across pods."""
    grouped: Dict[str, List[float]] = {}
    for res in series or []:
        vals = [p.value for p in parse_points(res)]
        if not vals:
            continue
        grouped.setdefault(container_of(res), []).extend(vals)
    return grouped


def all_values(series: Optional[List[Dict[str, Any]]]) -> List[float]:
    vals: List[float] = []
    for res in series or []:
        vals.extend(p.value for p in parse_points(res))
    return vals


def percentile(series: Optional[List[Dict[str, Any]]], p: float) -> float:
    """Floor-index percentile over every value in the set (p in [0, 1])."""
    return floor_percentile(all_values(series), p)


def distinct_labels(series: Optional[List[Dict[str, Any]]], keys: Iterable[str] = POD_LABELS) -> List[str]:
    """Distinct label values in first-seen order, ignoring series without the label."""
    keys = tuple(keys)
    seen: Dict[str, None] = {}
    for res in series or []:
        value = label(res, keys)
        if value:
            seen.setdefault(value, None)
    return list(seen)
