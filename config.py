import os
import logging
import sys
from typing import Optional, Dict, Any
from urllib.parse import urlparse

import yaml


# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def setup_logging():
    """Configure application-wide logging"""
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "on")


# =============================================================================
# Telemetry (Prometheus) Configuration
# =============================================================================
PROMETHEUS_URL: str = os.getenv("PROMETHEUS_URL", "http://localhost:9090")
PROMETHEUS_TIMEOUT_SECONDS: int = int(os.getenv("PROMETHEUS_TIMEOUT_SECONDS", "30"))
PROMETHEUS_BEARER_TOKEN: Optional[str] = os.getenv("PROMETHEUS_BEARER_TOKEN")
PROMETHEUS_STEP: str = os.getenv("PROMETHEUS_STEP", "60s")

# Window used by the distinct-pod replica heuristic
REPLICA_WINDOW_HOURS: int = int(os.getenv("REPLICA_WINDOW_HOURS", "24"))
# Window used when reading current resource requests
REQUEST_WINDOW_MINUTES: int = int(os.getenv("REQUEST_WINDOW_MINUTES", "60"))

# =============================================================================
# Cache Configuration
# =============================================================================
CACHE_ENABLED: bool = _env_bool("CACHE_ENABLED", True)
CACHE_TTL_METRICS: int = int(os.getenv("CACHE_TTL_METRICS", "120"))
CACHE_TTL_RESOURCES: int = int(os.getenv("CACHE_TTL_RESOURCES", "600"))
CACHE_TTL_AUTOSCALER: int = int(os.getenv("CACHE_TTL_AUTOSCALER", "1800"))
CACHE_TTL_CLUSTER_INFO: int = int(os.getenv("CACHE_TTL_CLUSTER_INFO", "3600"))
# Query windows are aligned to this many seconds before being used in cache keys
CACHE_WINDOW_ALIGN_SECONDS: int = int(os.getenv("CACHE_WINDOW_ALIGN_SECONDS", "60"))
# Shared Redis cache; the in-process cache is used when unset
REDIS_URL: Optional[str] = os.getenv("REDIS_URL") or None
REDIS_TIMEOUT_SECONDS: float = float(os.getenv("REDIS_TIMEOUT_SECONDS", "2"))

# =============================================================================
# Batch Processing Configuration
# =============================================================================
WORKLOAD_CONCURRENCY: int = int(os.getenv("WORKLOAD_CONCURRENCY", "4"))
UPSTREAM_CONCURRENCY: int = int(os.getenv("UPSTREAM_CONCURRENCY", "8"))
UPSTREAM_TIMEOUT_SECONDS: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "30"))
BATCH_TIMEOUT_SECONDS: float = float(os.getenv("BATCH_TIMEOUT_SECONDS", "300"))

# =============================================================================
# Pricing Configuration
# =============================================================================
# Illustrative on-demand rates; real billing varies by region and commitment.
CPU_RATE_PER_VCPU_HOUR: float = float(os.getenv("CPU_RATE_PER_VCPU_HOUR", "0.031611"))
MEMORY_RATE_PER_GIB_HOUR: float = float(os.getenv("MEMORY_RATE_PER_GIB_HOUR", "0.004237"))
HOURS_PER_MONTH: int = int(os.getenv("HOURS_PER_MONTH", str(24 * 30)))
CURRENCY_DECIMALS: int = int(os.getenv("CURRENCY_DECIMALS", "2"))
# Optional YAML file overriding the rates above
RATE_TABLE_PATH: Optional[str] = os.getenv("RATE_TABLE_PATH")

# =============================================================================
# Sizing Policy
# =============================================================================
MIN_MEMORY_GIB_PER_CPU: float = float(os.getenv("MIN_MEMORY_GIB_PER_CPU", "1.0"))
MAX_MEMORY_GIB_PER_CPU: float = float(os.getenv("MAX_MEMORY_GIB_PER_CPU", "6.5"))
CPU_USAGE_PERCENTILE: float = float(os.getenv("CPU_USAGE_PERCENTILE", "0.90"))
CPU_USAGE_BUFFER: float = float(os.getenv("CPU_USAGE_BUFFER", "1.15"))
MEMORY_USAGE_BUFFER: float = float(os.getenv("MEMORY_USAGE_BUFFER", "1.20"))

# =============================================================================
# Output / API
# =============================================================================
OUTPUT_DIR: str = os.getenv("OUTPUT_DIR", "output")
API_HOST: str = os.getenv("API_HOST", "127.0.0.1")
API_PORT: int = int(os.getenv("API_PORT", "3001"))


def get_output_path(cluster_name: str) -> str:
    """Get cluster-specific output path: {cluster_name}_recommendations.json"""
    return os.path.join(OUTPUT_DIR, f"{cluster_name}_recommendations.json")


def load_rate_table(path: Optional[str] = None) -> Dict[str, Any]:
    """Load pricing rates, optionally overridden by a YAML rate file.

    The YAML file may contain any of `cpu_per_vcpu_hour`, `memory_per_gib_hour`,
    `hours_per_month` and `currency_decimals`; missing keys keep the
    environment/default values.
    """
    rates: Dict[str, Any] = {
        "cpu_per_vcpu_hour": CPU_RATE_PER_VCPU_HOUR,
        "memory_per_gib_hour": MEMORY_RATE_PER_GIB_HOUR,
        "hours_per_month": HOURS_PER_MONTH,
        "currency_decimals": CURRENCY_DECIMALS,
    }
    path = path if path is not None else RATE_TABLE_PATH
    if not path:
        return rates
    with open(path, 'r') as f:
        overrides = yaml.safe_load(f) or {}
    if not isinstance(overrides, dict):
        raise ConfigValidationError(f"rate table {path} must be a mapping")
    for key in rates:
        if key in overrides:
            rates[key] = overrides[key]
    return rates


__all__ = [
    "LOG_LEVEL",
    "LOG_FORMAT",
    "setup_logging",
    "PROMETHEUS_URL",
    "PROMETHEUS_TIMEOUT_SECONDS",
    "PROMETHEUS_BEARER_TOKEN",
    "PROMETHEUS_STEP",
    "REPLICA_WINDOW_HOURS",
    "REQUEST_WINDOW_MINUTES",
    "CACHE_ENABLED",
    "CACHE_TTL_METRICS",
    "CACHE_TTL_RESOURCES",
    "CACHE_TTL_AUTOSCALER",
    "CACHE_TTL_CLUSTER_INFO",
    "CACHE_WINDOW_ALIGN_SECONDS",
    "REDIS_URL",
    "REDIS_TIMEOUT_SECONDS",
    "WORKLOAD_CONCURRENCY",
    "UPSTREAM_CONCURRENCY",
    "UPSTREAM_TIMEOUT_SECONDS",
    "BATCH_TIMEOUT_SECONDS",
    "CPU_RATE_PER_VCPU_HOUR",
    "MEMORY_RATE_PER_GIB_HOUR",
    "HOURS_PER_MONTH",
    "CURRENCY_DECIMALS",
    "RATE_TABLE_PATH",
    "MIN_MEMORY_GIB_PER_CPU",
    "MAX_MEMORY_GIB_PER_CPU",
    "CPU_USAGE_PERCENTILE",
    "CPU_USAGE_BUFFER",
    "MEMORY_USAGE_BUFFER",
    "OUTPUT_DIR",
    "API_HOST",
    "API_PORT",
    "get_output_path",
    "load_rate_table",
    "validate_config",
]


# =============================================================================
# Configuration Validation
# =============================================================================
class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


def _validate_positive_int(name: str, value: int) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be positive, got {value}")


def _validate_url(name: str, value: str) -> None:
    try:
        result = urlparse(value)
        if not all([result.scheme, result.netloc]):
            raise ValueError("Missing scheme or netloc")
        if result.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid scheme: {result.scheme}")
    except ValueError as e:
        raise ConfigValidationError(f"{name} is not a valid URL: {value} ({e})")


def validate_config() -> None:
    """Validate all configuration values on startup

    Raises:
        ConfigValidationError: If any configuration value is invalid
    """
    errors = []

    for name, value in (
        ("PROMETHEUS_TIMEOUT_SECONDS", PROMETHEUS_TIMEOUT_SECONDS),
        ("REPLICA_WINDOW_HOURS", REPLICA_WINDOW_HOURS),
        ("REQUEST_WINDOW_MINUTES", REQUEST_WINDOW_MINUTES),
        ("CACHE_WINDOW_ALIGN_SECONDS", CACHE_WINDOW_ALIGN_SECONDS),
        ("WORKLOAD_CONCURRENCY", WORKLOAD_CONCURRENCY),
        ("UPSTREAM_CONCURRENCY", UPSTREAM_CONCURRENCY),
        ("HOURS_PER_MONTH", HOURS_PER_MONTH),
    ):
        try:
            _validate_positive_int(name, value)
        except ConfigValidationError as e:
            errors.append(str(e))

    if UPSTREAM_TIMEOUT_SECONDS <= 0:
        errors.append(f"UPSTREAM_TIMEOUT_SECONDS must be positive, got {UPSTREAM_TIMEOUT_SECONDS}")
    if REDIS_TIMEOUT_SECONDS <= 0:
        errors.append(f"REDIS_TIMEOUT_SECONDS must be positive, got {REDIS_TIMEOUT_SECONDS}")
    if BATCH_TIMEOUT_SECONDS < UPSTREAM_TIMEOUT_SECONDS:
        errors.append("BATCH_TIMEOUT_SECONDS must not be shorter than UPSTREAM_TIMEOUT_SECONDS")

    try:
        _validate_url("PROMETHEUS_URL", PROMETHEUS_URL)
    except ConfigValidationError as e:
        errors.append(str(e))

    if CPU_RATE_PER_VCPU_HOUR < 0 or MEMORY_RATE_PER_GIB_HOUR < 0:
        errors.append("pricing rates must not be negative")

    if not (0 < MIN_MEMORY_GIB_PER_CPU <= MAX_MEMORY_GIB_PER_CPU):
        errors.append(
            f"CPU:memory bounds are inconsistent: min={MIN_MEMORY_GIB_PER_CPU}, max={MAX_MEMORY_GIB_PER_CPU}"
        )

    if not (0 < CPU_USAGE_PERCENTILE <= 1):
        errors.append(f"CPU_USAGE_PERCENTILE must be in (0, 1], got {CPU_USAGE_PERCENTILE}")

    if RATE_TABLE_PATH and not os.path.exists(RATE_TABLE_PATH):
        errors.append(f"RATE_TABLE_PATH does not exist: {RATE_TABLE_PATH}")

    if errors:
        raise ConfigValidationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(errors)
        )
