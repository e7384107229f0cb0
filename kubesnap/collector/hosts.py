"""Node host data: kubelet configz and healthz through the node proxy.

The whole gathering is one recorded query (``Nodes``, cluster scope).  A
single node failing to answer is logged and skipped; only failing to list
nodes or to write results fails the query.
"""

from __future__ import annotations

import structlog

from kubesnap.collector.queries import timed_object_query, timed_query
from kubesnap.collector.recorder import QueryRecorder
from kubesnap.collector.sink import SnapshotSink
from kubesnap.dynamic.client import DynamicClient, RESTClient
from kubesnap.errors import APIError
from kubesnap.models.records import QueryRecord
from kubesnap.models.resources import GroupVersionResource

_log = structlog.get_logger(component="collector.hosts")

NODES = GroupVersionResource(group="", version="v1", resource="nodes")


async def gather_node_data(node_names: list[str], rest: RESTClient, sink: SnapshotSink) -> None:
    """Write ``configz.json`` and ``healthz.json`` for every node."""
    for node in node_names:
        outdir = sink.hosts_dir(node)
        proxy = f"/api/v1/nodes/{node}/proxy"

        try:
            await timed_object_query(sink, outdir, "configz.json", lambda: rest.request_json("GET", f"{proxy}/configz"))
        except APIError as exc:
            _log.warning("node_configz_failed", node=node, error=str(exc))

        try:
            await rest.request("GET", f"{proxy}/healthz")
            status = 200
        except APIError as exc:
            if not exc.status:
                _log.warning("node_healthz_failed", node=node, error=str(exc))
                continue
            status = exc.status
        sink.serialize({"status": status}, outdir, "healthz.json")


async def query_host_data(
    rest: RESTClient,
    client: DynamicClient,
    recorder: QueryRecorder,
    sink: SnapshotSink,
    timeout: float = 0.0,
) -> QueryRecord:
    async def _gather() -> None:
        nodes = await client.list(NODES)
        await gather_node_data([node.name for node in nodes], rest, sink)

    return await timed_query(recorder, "Nodes", "", _gather, timeout=timeout)
