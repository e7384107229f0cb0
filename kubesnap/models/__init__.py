"""Core data structures for kubesnap."""

from kubesnap.models.config import (
    ClusterConfig,
    FilterConfig,
    HostDataConfig,
    KubeSnapConfig,
    LogConfig,
    PodLogConfig,
    QueryConfig,
)
from kubesnap.models.records import QueryOutcome, QueryRecord
from kubesnap.models.resources import (
    APIGroup,
    APIResource,
    APIResourceList,
    GroupKind,
    GroupVersion,
    GroupVersionKind,
    GroupVersionResource,
    ListOptions,
    Unstructured,
)

__all__ = [
    "APIGroup",
    "APIResource",
    "APIResourceList",
    "ClusterConfig",
    "FilterConfig",
    "GroupKind",
    "GroupVersion",
    "GroupVersionKind",
    "GroupVersionResource",
    "HostDataConfig",
    "KubeSnapConfig",
    "ListOptions",
    "LogConfig",
    "PodLogConfig",
    "QueryConfig",
    "QueryOutcome",
    "QueryRecord",
    "Unstructured",
]
