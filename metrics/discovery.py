"""
Replica and workload-type discovery from pod-level series.

The replica count is a best-effort signal: it counts distinct pods that
reported traffic over a recent window, so pods that were replaced during the
window are counted too and idle pods may be missed. It is approximate by
nature and must not be treated as the desired replica count.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from metrics.prometheus_client import PrometheusError
from normalize.series import distinct_labels, label

logger = logging.getLogger(__name__)

# Fewer distinct pods than this triggers the secondary signal
MIN_CONFIDENT_PODS = 3

CONTROLLER_LABELS = ('owner_kind', 'created_by_kind', 'top_level_controller_type')

# Pods are owned by ReplicaSets; report the controller users actually manage
_OWNER_KIND_ALIASES = {
    'ReplicaSet': 'Deployment',
}


def detect_workload_type(series: Optional[List[Dict[str, Any]]]) -> Optional[str]:
    """First controller kind found on any series, or None."""
    for res in series or []:
        kind = label(res, CONTROLLER_LABELS)
        if kind and kind != '<none>':
            return _OWNER_KIND_ALIASES.get(kind, kind)
    return None


def resolve_replicas(primary: Optional[List[Dict[str, Any]]],
                     fetch_secondary: Callable[[], List[Dict[str, Any]]],
                     workload: str = '') -> Tuple[int, Optional[str]]:
    """Return `(replica_count, workload_type)` for a workload.

    `primary` is the pod network series. When it shows fewer than
    MIN_CONFIDENT_PODS pods, `fetch_secondary()` is called for the pod CPU
    series and the larger distinct-pod count wins. PrometheusError from the
    secondary read is logged and ignored; anything else propagates.
    The count never drops below 1.
    """
    pods = distinct_labels(primary)
    workload_type = detect_workload_type(primary)
    count = len(pods)
    logger.debug(f"{workload}: {count} distinct pods in primary replica signal")

    if count < MIN_CONFIDENT_PODS:
        try:
            secondary = fetch_secondary()
        except PrometheusError as e:
            logger.warning(f"{workload}: secondary replica signal failed: {e}")
        else:
            alt = len(distinct_labels(secondary))
            if alt > count:
                logger.info(f"{workload}: secondary replica signal found {alt} pods (primary {count})")
                count = alt
            workload_type = workload_type or detect_workload_type(secondary)

    return max(count, 1), workload_type
