"""Configuration data structures."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field


@dataclass(frozen=True)
class FilterConfig:
    """Which namespaces, resources and labels a run collects.

    Immutable for the duration of a run.
    """

    namespaces: str = ".*"
    label_selector: str = ""
    resources: tuple[str, ...] = ()


@dataclass
class QueryConfig:
    """Per-resource query execution settings."""

    max_concurrency: int = 1
    timeout_seconds: float = 0.0


@dataclass
class HostDataConfig:
    """Node configz/healthz gathering."""

    enabled: bool = True


@dataclass
class PodLogConfig:
    """Pod log gathering."""

    enabled: bool = True
    limit_bytes: int = 0


@dataclass
class ClusterConfig:
    """How to reach the cluster."""

    kubeconfig: str = ""
    context: str = ""


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    console: bool = False


@dataclass
class KubeSnapConfig:
    """Top-level kubesnap configuration."""

    output_dir: str = "./kubesnap-results"
    filters: FilterConfig = field(default_factory=FilterConfig)
    query: QueryConfig = field(default_factory=QueryConfig)
    host_data: HostDataConfig = field(default_factory=HostDataConfig)
    pod_logs: PodLogConfig = field(default_factory=PodLogConfig)
    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def to_dict(self) -> dict[str, object]:
        return asdict(self)
