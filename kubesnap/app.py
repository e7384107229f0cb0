"""Run orchestration for kubesnap.

A run is: cluster-scoped pass -> one pass per selected namespace -> pod logs
-> host data -> run metadata.  Order matters only in that every pass builds
its own work list from fresh discovery before querying anything.

A pass that cannot build its work list is logged and counted as failed; the
run carries on with the next pass so one broken scope still leaves the rest
of the snapshot and a complete query ledger.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from kubesnap.collector.hosts import query_host_data
from kubesnap.collector.podlogs import query_pod_logs
from kubesnap.collector.queries import query_resources
from kubesnap.collector.recorder import QueryRecorder
from kubesnap.collector.sink import SnapshotSink
from kubesnap.dynamic.client import RESTClient
from kubesnap.dynamic.mapper import ResourceMapper
from kubesnap.errors import APIError, DiscoveryError, KubeSnapError
from kubesnap.models.config import KubeSnapConfig
from kubesnap.models.records import QueryRecord
from kubesnap.models.resources import GroupVersionResource
from kubesnap.observability.logging import get_logger

NAMESPACES = GroupVersionResource(group="", version="v1", resource="namespaces")


@dataclass
class RunResult:
    """What a finished run leaves behind for reporting."""

    output_dir: Path
    records: tuple[QueryRecord, ...] = ()
    failed_passes: list[str] = field(default_factory=list)

    @property
    def failed_queries(self) -> list[QueryRecord]:
        return [r for r in self.records if not r.succeeded]

    @property
    def ok(self) -> bool:
        return not self.failed_passes


class SnapshotRun:
    """One collection run against one cluster.

    Args:
        config: Effective configuration; not modified.
        helper: Discovery/mapping/query handle bound to the cluster.
        rest:   Raw REST client, used by the host and pod-log peers.
    """

    def __init__(self, config: KubeSnapConfig, helper: ResourceMapper, rest: RESTClient) -> None:
        self.config = config
        self.helper = helper
        self.rest = rest
        self.recorder = QueryRecorder()
        self.sink = SnapshotSink(config.output_dir)
        self._failed_passes: list[str] = []
        self._log: structlog.stdlib.BoundLogger = get_logger("app")

    async def run(self) -> RunResult:
        """Run every pass and peer, then write the run metadata.

        The ledger and metadata are written even when the run stops early,
        so records made before the failure are kept.

        Raises:
            KubeSnapError: if namespaces cannot be listed.
        """
        self._log.info("run_starting", output_dir=str(self.sink.root))

        try:
            await self._run_pass(None)

            namespaces = await self.selected_namespaces()
            for namespace in namespaces:
                await self._run_pass(namespace)

            if self.config.pod_logs.enabled:
                for namespace in namespaces:
                    await query_pod_logs(
                        self.rest, self.helper.client, self.recorder, namespace, self.config, self.sink
                    )

            if self.config.host_data.enabled:
                await query_host_data(
                    self.rest,
                    self.helper.client,
                    self.recorder,
                    self.sink,
                    timeout=self.config.query.timeout_seconds,
                )
        finally:
            self._write_meta()

        result = RunResult(
            output_dir=self.sink.root,
            records=self.recorder.records,
            failed_passes=list(self._failed_passes),
        )
        self._log.info(
            "run_finished",
            queries=len(result.records),
            failed_queries=len(result.failed_queries),
            failed_passes=len(result.failed_passes),
        )
        return result

    async def _run_pass(self, namespace: str | None) -> None:
        try:
            await query_resources(self.helper, self.recorder, namespace, self.config, self.sink)
        except DiscoveryError as exc:
            scope = namespace if namespace is not None else "<cluster>"
            self._log.error("scope_pass_aborted", scope=scope, error=str(exc))
            self._failed_passes.append(scope)

    async def selected_namespaces(self) -> list[str]:
        """Namespaces whose names fully match the configured pattern.

        Raises:
            KubeSnapError: if namespaces cannot be listed.
        """
        pattern = re.compile(self.config.filters.namespaces)
        try:
            namespaces = await self.helper.client.list(NAMESPACES)
        except APIError as exc:
            raise KubeSnapError(f"listing namespaces: {exc}") from exc
        selected = [ns.name for ns in namespaces if pattern.fullmatch(ns.name)]
        self._log.info("namespaces_selected", selected=len(selected), total=len(namespaces))
        return selected

    def _write_meta(self) -> None:
        meta = self.sink.meta_dir
        self.recorder.dump_query_data(meta / "query-time.json")
        self.sink.serialize(self.config.to_dict(), meta, "config.json")
        self.recorder.metrics.write(meta / "metrics.prom")


async def connect(config: KubeSnapConfig) -> RESTClient:
    """Build a REST client from in-cluster credentials or a kubeconfig.

    An explicitly configured kubeconfig or context skips the in-cluster
    attempt.

    Raises:
        KubeSnapError: if no usable credentials are found.
    """
    log = get_logger("app")
    import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
    from kubernetes_asyncio.client import ApiClient  # type: ignore[import-untyped]

    kubeconfig = config.cluster.kubeconfig or None
    context = config.cluster.context or None
    try:
        if kubeconfig is None and context is None:
            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                log.info("k8s client configured from in-cluster service account")
                return RESTClient(ApiClient())
            except k8s_config.ConfigException:
                log.debug("in_cluster_config_unavailable")
        # load_kube_config() is async in kubernetes-asyncio
        await k8s_config.load_kube_config(config_file=kubeconfig, context=context)
        log.info("k8s client configured from kubeconfig", context=context)
    except k8s_config.ConfigException as exc:
        raise KubeSnapError(f"loading cluster credentials: {exc}") from exc
    return RESTClient(ApiClient())


async def run_snapshot(config: KubeSnapConfig) -> RunResult:
    """Connect, run one full collection, and always release the client."""
    rest = await connect(config)
    try:
        helper = await ResourceMapper.for_cluster(rest)
        return await SnapshotRun(config, helper, rest).run()
    finally:
        await rest.close()
