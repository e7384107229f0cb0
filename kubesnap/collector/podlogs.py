"""Pod log gathering for one namespace, recorded as a single query."""

from __future__ import annotations

import structlog

from kubesnap.collector.queries import build_list_options, timed_query
from kubesnap.collector.recorder import QueryRecorder
from kubesnap.collector.sink import SnapshotSink
from kubesnap.dynamic.client import DynamicClient, RESTClient
from kubesnap.errors import APIError
from kubesnap.models.config import KubeSnapConfig
from kubesnap.models.records import QueryRecord
from kubesnap.models.resources import GroupVersionResource, ListOptions, Unstructured

_log = structlog.get_logger(component="collector.podlogs")

PODS = GroupVersionResource(group="", version="v1", resource="pods")


def container_names(pod: Unstructured) -> list[str]:
    """Init containers first, then regular containers, in spec order."""
    spec = pod.obj.get("spec") or {}
    names: list[str] = []
    for key in ("initContainers", "containers"):
        for container in spec.get(key) or ():
            if isinstance(container, dict) and container.get("name"):
                names.append(str(container["name"]))
    return names


async def gather_pod_logs(
    rest: RESTClient,
    client: DynamicClient,
    namespace: str,
    options: ListOptions,
    limit_bytes: int,
    sink: SnapshotSink,
) -> None:
    pods = await client.list(PODS, ListOptions(label_selector=options.label_selector), namespace=namespace)
    for pod in pods:
        outdir = sink.pod_logs_dir(namespace, pod.name)
        for container in container_names(pod):
            query = [("container", container)]
            if limit_bytes > 0:
                query.append(("limitBytes", str(limit_bytes)))
            try:
                text = await rest.request_text(
                    "GET", f"/api/v1/namespaces/{namespace}/pods/{pod.name}/log", query=query
                )
            except APIError as exc:
                # Containers that never started have no log yet.
                _log.warning("pod_log_failed", namespace=namespace, pod=pod.name, container=container, error=str(exc))
                continue
            sink.write_text(text, outdir, f"{container}.txt")


async def query_pod_logs(
    rest: RESTClient,
    client: DynamicClient,
    recorder: QueryRecorder,
    namespace: str,
    config: KubeSnapConfig,
    sink: SnapshotSink,
) -> QueryRecord:
    options = build_list_options(config.filters.label_selector, namespace)
    return await timed_query(
        recorder,
        "PodLogs",
        namespace,
        lambda: gather_pod_logs(rest, client, namespace, options, config.pod_logs.limit_bytes, sink),
        timeout=config.query.timeout_seconds,
    )
