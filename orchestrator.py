"""Orchestrator: validated batch request -> per-workload telemetry reads -> WorkloadMetrics.

Workloads are processed in parallel and isolated from each other: any failure
inside one workload's pipeline becomes an error item in its slot, and the
output always has one item per requested workload, in request order.
"""
import json
import logging
import os
import sys
import tempfile
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional

from config import (
    setup_logging, validate_config, ConfigValidationError,
    WORKLOAD_CONCURRENCY, UPSTREAM_CONCURRENCY,
    UPSTREAM_TIMEOUT_SECONDS, BATCH_TIMEOUT_SECONDS,
    REPLICA_WINDOW_HOURS, REQUEST_WINDOW_MINUTES, OUTPUT_DIR, get_output_path,
)
from analysis.cost import RateTable
from analysis.workload_analysis import WorkloadSeries, analyze_workload
from metrics import prometheus_client as prom
from metrics.cache import CacheLayer, build_store
from metrics.discovery import resolve_replicas
from metrics.prometheus_client import MetricQuery, PrometheusError, PrometheusTimeoutError
from models import BatchRequest, WorkloadMetrics, WorkloadSpec
from validation import RequestValidationError, validate_metrics_request

logger = logging.getLogger(__name__)

BATCH_DEADLINE_ERROR = "batch deadline exceeded before the workload finished"


def _atomic_write(path: str, data: str) -> None:
    dirp = os.path.dirname(path) or '.'
    fd, tmp = tempfile.mkstemp(prefix='.tmp_recommendations_', dir=dirp)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(data)
        # Atomic replace
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.remove(tmp)


class _Read:
    """A submitted telemetry read. Its timeout starts when a worker picks it up."""

    def __init__(self):
        self.started = threading.Event()
        self.started_at = 0.0
        self.future: Optional[Future] = None


class WorkloadOrchestrator:
    """Drives telemetry reads and analysis for a batch of workloads.

    Args:
        telemetry: object with `fetch(MetricQuery) -> list of series`
        cache: CacheLayer wrapping the reads; None disables caching
        rates: pricing used for cost and savings
        workload_concurrency: workloads processed at once
        upstream_concurrency: telemetry reads in flight at once, across workloads
        upstream_timeout: seconds to wait for any single telemetry read
        batch_timeout: seconds to wait for the whole batch
    """

    def __init__(self, telemetry: Any, cache: Optional[CacheLayer] = None,
                 rates: Optional[RateTable] = None,
                 workload_concurrency: int = WORKLOAD_CONCURRENCY,
                 upstream_concurrency: int = UPSTREAM_CONCURRENCY,
                 upstream_timeout: float = UPSTREAM_TIMEOUT_SECONDS,
                 batch_timeout: float = BATCH_TIMEOUT_SECONDS,
                 replica_window_hours: int = REPLICA_WINDOW_HOURS,
                 request_window_minutes: int = REQUEST_WINDOW_MINUTES,
                 clock: Callable[[], float] = time.time):
        self.telemetry = telemetry
        self.cache = cache if cache is not None else CacheLayer(None)
        self.rates = rates if rates is not None else RateTable.from_config()
        self.workload_concurrency = workload_concurrency
        self.upstream_concurrency = upstream_concurrency
        self.upstream_timeout = upstream_timeout
        self.batch_timeout = batch_timeout
        self.replica_window_hours = replica_window_hours
        self.request_window_minutes = request_window_minutes
        self.clock = clock

    # ------------------------------------------------------------------
    # telemetry reads
    # ------------------------------------------------------------------
    def _fetch(self, query: MetricQuery) -> List[Dict[str, Any]]:
        return self.cache.get_or_fetch(query, self.telemetry.fetch)

    def _submit(self, pool: ThreadPoolExecutor, query: MetricQuery) -> _Read:
        read = _Read()

        def run():
            read.started_at = time.monotonic()
            read.started.set()
            return self._fetch(query)

        read.future = pool.submit(run)
        return read

    def _wait(self, read: _Read, kind: str) -> List[Dict[str, Any]]:
        """Result of `read`, allowing upstream_timeout from when it started running.

        Time spent queued behind other reads in the shared pool does not count.
        """
        # a read cancelled while queued is done without ever starting
        while not read.started.wait(0.05):
            if read.future.done():
                break
        remaining = 0.0
        if read.started.is_set():
            remaining = self.upstream_timeout - (time.monotonic() - read.started_at)
        try:
            return read.future.result(timeout=max(0.0, remaining))
        except FutureTimeoutError:
            read.future.cancel()
            raise PrometheusTimeoutError(f"{kind} read timed out after {self.upstream_timeout}s")

    def _wait_or_degrade(self, read: _Read, kind: str, workload: str) -> Optional[List[Dict[str, Any]]]:
        """Wait for a read whose failure is survivable. Timeouts still propagate."""
        try:
            return self._wait(read, kind)
        except PrometheusTimeoutError:
            raise
        except PrometheusError as e:
            logger.warning(f"{workload}: {kind} unavailable, continuing without it: {e}")
            return None

    def preflight(self, request: BatchRequest, end: float) -> None:
        """Batch-level connectivity check; PrometheusError stops the batch."""
        query = MetricQuery(request.project_id, request.cluster_name, None, None,
                            prom.CLUSTER_INFO, end - 60, end)
        self._fetch(query)

    # ------------------------------------------------------------------
    # per-workload pipeline
    # ------------------------------------------------------------------
    def _analyze(self, request: BatchRequest, spec: WorkloadSpec, start: float, end: float,
                 fetch_pool: ThreadPoolExecutor) -> WorkloadMetrics:
        key = f"{spec.namespace}/{spec.name}"

        def query(kind: str, q_start: float = start) -> MetricQuery:
            return MetricQuery(request.project_id, request.cluster_name, spec.namespace,
                               spec.name, kind, q_start, end)

        request_start = end - self.request_window_minutes * 60
        replica_start = end - self.replica_window_hours * 3600

        reads = {
            prom.CPU_REQUEST: self._submit(fetch_pool, query(prom.CPU_REQUEST, request_start)),
            prom.MEMORY_REQUEST: self._submit(fetch_pool, query(prom.MEMORY_REQUEST, request_start)),
            prom.CPU_USAGE: self._submit(fetch_pool, query(prom.CPU_USAGE)),
            prom.MEMORY_USAGE: self._submit(fetch_pool, query(prom.MEMORY_USAGE)),
            prom.AUTOSCALER_CPU: self._submit(fetch_pool, query(prom.AUTOSCALER_CPU)),
            prom.AUTOSCALER_MEMORY: self._submit(fetch_pool, query(prom.AUTOSCALER_MEMORY)),
            prom.POD_NETWORK: self._submit(fetch_pool, query(prom.POD_NETWORK, replica_start)),
        }

        pod_network = self._wait_or_degrade(reads[prom.POD_NETWORK], prom.POD_NETWORK, key)
        if pod_network is None:
            replicas, workload_type = 1, None
        else:
            def fetch_secondary():
                return self._wait(self._submit(fetch_pool, query(prom.POD_CPU, replica_start)), prom.POD_CPU)
            replicas, workload_type = resolve_replicas(pod_network, fetch_secondary, key)

        cpu_request = self._wait_or_degrade(reads[prom.CPU_REQUEST], prom.CPU_REQUEST, key)
        memory_request = self._wait_or_degrade(reads[prom.MEMORY_REQUEST], prom.MEMORY_REQUEST, key)
        raw = WorkloadSeries(
            cpu_request=cpu_request or [],
            memory_request=memory_request or [],
            cpu_usage=self._wait(reads[prom.CPU_USAGE], prom.CPU_USAGE),
            memory_usage=self._wait(reads[prom.MEMORY_USAGE], prom.MEMORY_USAGE),
            autoscaler_cpu=self._wait_or_degrade(reads[prom.AUTOSCALER_CPU], prom.AUTOSCALER_CPU, key) or [],
            autoscaler_memory=self._wait_or_degrade(reads[prom.AUTOSCALER_MEMORY], prom.AUTOSCALER_MEMORY, key) or [],
        )
        logger.info(f"{key}: {replicas} replica(s), type {workload_type or spec.type}")
        return analyze_workload(spec, raw, replicas, workload_type or spec.type, self.rates)

    def process_workload(self, request: BatchRequest, spec: WorkloadSpec, start: float, end: float,
                         fetch_pool: ThreadPoolExecutor) -> WorkloadMetrics:
        """Run one workload's pipeline; never raises."""
        try:
            return self._analyze(request, spec, start, end, fetch_pool)
        except Exception as e:
            logger.error(f"{spec.namespace}/{spec.name}: analysis failed: {e}")
            return WorkloadMetrics.failed(spec.name, spec.namespace, str(e) or e.__class__.__name__, spec.type)

    # ------------------------------------------------------------------
    # batch
    # ------------------------------------------------------------------
    def run_batch(self, request: BatchRequest) -> List[WorkloadMetrics]:
        """Process every workload in `request`.

        Raises:
            PrometheusError: when the batch-level preflight fails
        """
        end = self.clock()
        start = end - request.time_range_hours * 3600
        self.preflight(request, end)

        logger.info(f"Processing {len(request.workloads)} workload(s) for "
                    f"{request.project_id}/{request.cluster_name} over {request.time_range_hours}h")

        fetch_pool = ThreadPoolExecutor(max_workers=self.upstream_concurrency, thread_name_prefix="telemetry")
        workload_pool = ThreadPoolExecutor(max_workers=self.workload_concurrency, thread_name_prefix="workload")
        results: List[WorkloadMetrics] = []
        try:
            futures = [
                workload_pool.submit(self.process_workload, request, spec, start, end, fetch_pool)
                for spec in request.workloads
            ]
            deadline = time.monotonic() + self.batch_timeout
            for spec, future in zip(request.workloads, futures):
                try:
                    results.append(future.result(timeout=max(0.0, deadline - time.monotonic())))
                except FutureTimeoutError:
                    future.cancel()
                    logger.error(f"{spec.namespace}/{spec.name}: {BATCH_DEADLINE_ERROR}")
                    results.append(WorkloadMetrics.failed(spec.name, spec.namespace, BATCH_DEADLINE_ERROR, spec.type))
        finally:
            # Abandon in-flight work instead of blocking on it
            workload_pool.shutdown(wait=False, cancel_futures=True)
            fetch_pool.shutdown(wait=False, cancel_futures=True)

        failed = sum(1 for r in results if not r.ok)
        logger.info(f"Batch complete: {len(results) - failed} succeeded, {failed} failed")
        return results


def to_response(results: List[WorkloadMetrics]) -> Dict[str, Any]:
    return {"workloads": [r.to_dict() for r in results]}


def build_orchestrator() -> WorkloadOrchestrator:
    """Orchestrator wired from configuration."""
    cache = CacheLayer(build_store())
    return WorkloadOrchestrator(telemetry=prom.PrometheusTelemetry(), cache=cache, rates=RateTable.from_config())


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    # Setup logging first
    setup_logging()

    if len(argv) != 1:
        logger.error("usage: orchestrator.py <request.json>")
        return 1

    # Validate configuration
    try:
        validate_config()
        logger.info("Configuration validated successfully")
    except ConfigValidationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    try:
        with open(argv[0], 'r', encoding='utf-8') as f:
            payload = json.load(f)
        request = validate_metrics_request(payload)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read request {argv[0]}: {e}")
        return 1
    except RequestValidationError as e:
        logger.error(f"Invalid request ({e.kind}): {e.details}")
        return 1

    try:
        results = build_orchestrator().run_batch(request)
    except PrometheusError as e:
        logger.error(f"Telemetry backend error ({e.kind}): {e}")
        return 1

    # Ensure output directory exists
    os.makedirs(OUTPUT_DIR, exist_ok=True)
    output_path = get_output_path(request.cluster_name)
    _atomic_write(output_path, json.dumps(to_response(results), indent=2))
    logger.info(f"Wrote {len(results)} workload result(s) to {output_path}")
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
