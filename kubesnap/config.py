"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from kubesnap.models.config import (
    ClusterConfig,
    FilterConfig,
    HostDataConfig,
    KubeSnapConfig,
    LogConfig,
    PodLogConfig,
    QueryConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBESNAP_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _env_list(key: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in _env(key).split(",") if item.strip())


def validate_namespace_regex(value: str) -> str:
    try:
        re.compile(value)
    except re.error as exc:
        raise ValueError(f"Invalid namespace pattern {value!r}: {exc}") from exc
    return value


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> KubeSnapConfig:
    """Load configuration from KUBESNAP_* environment variables."""
    return KubeSnapConfig(
        output_dir=_env("OUTPUT_DIR", "./kubesnap-results"),
        filters=FilterConfig(
            namespaces=validate_namespace_regex(_env("NAMESPACES", ".*")),
            label_selector=_env("LABEL_SELECTOR", ""),
            resources=_env_list("RESOURCES"),
        ),
        query=QueryConfig(
            max_concurrency=_env_int("QUERY_MAX_CONCURRENCY", 1, min_val=1, max_val=32),
            timeout_seconds=_env_float("QUERY_TIMEOUT", 0.0, min_val=0.0),
        ),
        host_data=HostDataConfig(
            enabled=_env_bool("HOST_DATA_ENABLED", True),
        ),
        pod_logs=PodLogConfig(
            enabled=_env_bool("POD_LOGS_ENABLED", True),
            limit_bytes=_env_int("POD_LOGS_LIMIT_BYTES", 0, min_val=0),
        ),
        cluster=ClusterConfig(
            kubeconfig=_env("KUBECONFIG", ""),
            context=_env("CONTEXT", ""),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
