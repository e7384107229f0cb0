"""End-to-end collection runs against an in-memory cluster.

Covers: the on-disk snapshot layout, namespace selection, the query ledger
and run metadata, and a broken scope pass not stopping the rest of the run.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest
from conftest import FakeRESTClient, install_standard_cluster, list_route, obj

from kubesnap.app import SnapshotRun, run_snapshot
from kubesnap.errors import APIError, KubeSnapError
from kubesnap.models.config import FilterConfig, HostDataConfig, KubeSnapConfig, PodLogConfig, QueryConfig
from kubesnap.models.records import QueryOutcome

pytestmark = pytest.mark.integration

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _add_peer_routes(rest: FakeRESTClient) -> None:
    """Pod listings per namespace, container logs and node proxy endpoints."""
    pods = {
        "default": [obj("v1", "Pod", "web-1", "default", spec={"containers": [{"name": "web"}]})],
        "kube-system": [obj("v1", "Pod", "dns-1", "kube-system", spec={"containers": [{"name": "coredns"}]})],
        "team-a": [],
    }
    for namespace, items in pods.items():
        rest.add(f"/api/v1/namespaces/{namespace}/pods", list_route("v1", "PodList", items))
        for item in items:
            name = item["metadata"]["name"]
            rest.add(f"/api/v1/namespaces/{namespace}/pods/{name}/log", f"{name} started\n")
    rest.add("/api/v1/nodes/node-1/proxy/configz", {"kubeletconfig": {"maxPods": 110}})
    rest.add("/api/v1/nodes/node-1/proxy/healthz", "ok")


def _files(root: Path) -> set[str]:
    return {str(p.relative_to(root)) for p in root.rglob("*") if p.is_file()}


@pytest.fixture
def cluster(fake_rest: FakeRESTClient) -> FakeRESTClient:
    _add_peer_routes(fake_rest)
    return fake_rest


# ---------------------------------------------------------------------------
# Full run
# ---------------------------------------------------------------------------


class TestFullRun:
    async def test_snapshot_layout(self, cluster, helper, config) -> None:
        """A run produces the documented directory layout."""
        result = await SnapshotRun(config, helper, cluster).run()

        assert result.ok
        assert _files(result.output_dir) == {
            "resources/cluster/namespaces.json",
            "resources/cluster/nodes.json",
            "resources/ns/default/pods.json",
            "resources/ns/default/deployments.json",
            "resources/ns/kube-system/pods.json",
            "resources/ns/team-a/widgets.json",
            "podlogs/default/web-1/logs/web.txt",
            "podlogs/kube-system/dns-1/logs/coredns.txt",
            "hosts/node-1/configz.json",
            "hosts/node-1/healthz.json",
            "meta/query-time.json",
            "meta/config.json",
            "meta/metrics.prom",
        }

    async def test_namespaced_results_hold_only_that_namespace(self, cluster, helper, config) -> None:
        """Namespaced results hold only objects from that namespace."""
        result = await SnapshotRun(config, helper, cluster).run()

        pods = json.loads((result.output_dir / "resources/ns/kube-system/pods.json").read_text())
        assert [(p["metadata"]["name"], p["metadata"]["namespace"], p["kind"]) for p in pods] == [
            ("dns-1", "kube-system", "Pod")
        ]

    async def test_one_record_per_query(self, cluster, helper, config) -> None:
        """The ledger holds one record per query."""
        result = await SnapshotRun(config, helper, cluster).run()

        # 2 cluster resources, 4 namespaced resources in 3 namespaces,
        # one pod-log query per namespace and one host-data query.
        assert len(result.records) == 2 + 4 * 3 + 3 + 1
        assert all(r.succeeded for r in result.records)
        scopes = {r.namespace for r in result.records if r.name == "pods"}
        assert scopes == {"default", "kube-system", "team-a"}
        assert [r.namespace for r in result.records if r.name == "Nodes"] == [""]

    async def test_query_ledger_written(self, cluster, helper, config) -> None:
        """The query ledger is written under meta."""
        result = await SnapshotRun(config, helper, cluster).run()

        ledger = json.loads((result.output_dir / "meta/query-time.json").read_text())
        assert len(ledger) == len(result.records)
        assert {"queryname", "namespace", "time", "outcome"} <= set(ledger[0])

    async def test_config_and_metrics_written(self, cluster, helper, config) -> None:
        """The run config and metrics are written under meta."""
        result = await SnapshotRun(config, helper, cluster).run()

        written = json.loads((result.output_dir / "meta/config.json").read_text())
        assert written["output_dir"] == config.output_dir
        assert "kubesnap_queries_total" in (result.output_dir / "meta/metrics.prom").read_text()

    async def test_metrics_count_only_this_run(self, cluster, helper, config) -> None:
        """A second run in the same process reports its own query count."""
        await SnapshotRun(config, helper, cluster).run()
        second_config = replace(config, output_dir=config.output_dir + "-second")
        result = await SnapshotRun(second_config, helper, cluster).run()

        text = (result.output_dir / "meta/metrics.prom").read_text()
        assert f'kubesnap_queries_total{{outcome="success"}} {float(len(result.records))}' in text

    async def test_peers_can_be_disabled(self, cluster, helper, config) -> None:
        """Disabling peers skips host data and pod logs."""
        config = replace(config, host_data=HostDataConfig(enabled=False), pod_logs=PodLogConfig(enabled=False))
        result = await SnapshotRun(config, helper, cluster).run()

        names = {r.name for r in result.records}
        assert "Nodes" not in names
        assert "PodLogs" not in names
        assert not (result.output_dir / "hosts").exists()


# ---------------------------------------------------------------------------
# Namespace selection
# ---------------------------------------------------------------------------


class TestNamespaceSelection:
    async def test_pattern_must_match_whole_name(self, cluster, helper, config) -> None:
        """The namespace pattern must match the whole name."""
        config = replace(config, filters=FilterConfig(namespaces="team-.*"))
        run = SnapshotRun(config, helper, cluster)

        assert await run.selected_namespaces() == ["team-a"]

    async def test_partial_match_is_not_enough(self, cluster, helper, config) -> None:
        """A partial match does not select a namespace."""
        config = replace(config, filters=FilterConfig(namespaces="kube"))
        assert await SnapshotRun(config, helper, cluster).selected_namespaces() == []

    async def test_only_selected_namespaces_collected(self, cluster, helper, config) -> None:
        """Only the selected namespaces are collected."""
        config = replace(config, filters=FilterConfig(namespaces="default|team-a"))
        result = await SnapshotRun(config, helper, cluster).run()

        ns_dirs = {p.name for p in (result.output_dir / "resources/ns").iterdir()}
        assert ns_dirs == {"default", "team-a"}
        assert "kube-system" not in {r.namespace for r in result.records}

    async def test_namespace_listing_failure_is_fatal(self, cluster, helper, config) -> None:
        """The run stops, but the cluster pass records still reach the ledger."""
        cluster.add("/api/v1/namespaces", APIError("namespaces is forbidden", status=403))
        with pytest.raises(KubeSnapError, match="listing namespaces"):
            await SnapshotRun(config, helper, cluster).run()

        meta = Path(config.output_dir) / "meta"
        ledger = json.loads((meta / "query-time.json").read_text())
        assert sorted(e["queryname"] for e in ledger) == ["namespaces", "nodes"]
        assert (meta / "config.json").exists()
        assert (meta / "metrics.prom").exists()


# ---------------------------------------------------------------------------
# Failure isolation
# ---------------------------------------------------------------------------


class TestFailureIsolation:
    async def test_discovery_failure_aborts_only_that_pass(self, cluster, helper, config) -> None:
        """Discovery failure aborts only the affected pass."""
        groups = cluster.routes[("GET", "/apis")]
        calls = 0

        def _flaky(query, body):
            # Third discovery crawl is the kube-system pass.
            nonlocal calls
            calls += 1
            if calls == 3:
                return APIError("the server is currently unable to handle the request", status=503)
            return groups

        cluster.add("/apis", _flaky)
        result = await SnapshotRun(config, helper, cluster).run()

        assert not result.ok
        assert result.failed_passes == ["kube-system"]
        assert not (result.output_dir / "resources/ns/kube-system").exists()
        assert (result.output_dir / "resources/ns/team-a/widgets.json").exists()
        assert "kube-system" not in {r.namespace for r in result.records if r.name != "PodLogs"}

    async def test_malformed_discovery_aborts_only_that_pass(self, cluster, helper, config) -> None:
        """A wrongly typed group document fails one pass instead of the run."""
        groups = cluster.routes[("GET", "/apis")]
        calls = 0

        def _malformed_once(query, body):
            nonlocal calls
            calls += 1
            if calls == 2:
                return {"groups": [{"name": "apps", "versions": [{"version": "v1"}], "preferredVersion": "v1"}]}
            return groups

        cluster.add("/apis", _malformed_once)
        result = await SnapshotRun(config, helper, cluster).run()

        assert result.failed_passes == ["default"]
        assert (result.output_dir / "resources/ns/team-a/widgets.json").exists()

    async def test_forbidden_resource_recorded_and_run_completes(self, cluster, helper, config) -> None:
        """A forbidden resource is recorded and the run completes."""
        cluster.add("/apis/apps/v1/deployments", APIError("deployments.apps is forbidden", status=403))
        result = await SnapshotRun(config, helper, cluster).run()

        assert result.ok
        failed = result.failed_queries
        assert {r.namespace for r in failed} == {"default", "kube-system", "team-a"}
        assert {r.name for r in failed} == {"deployments"}
        assert all(r.outcome is QueryOutcome.FAILURE for r in failed)
        ledger = json.loads((result.output_dir / "meta/query-time.json").read_text())
        assert sum(1 for e in ledger if e["outcome"] == "failure") == 3

    async def test_concurrent_run_collects_the_same(self, cluster, helper, config) -> None:
        """A concurrent run collects the same results as a sequential one."""
        sequential = await SnapshotRun(config, helper, cluster).run()
        files = _files(sequential.output_dir)

        concurrent_config = replace(
            config, output_dir=config.output_dir + "-concurrent", query=QueryConfig(max_concurrency=4)
        )
        concurrent = await SnapshotRun(concurrent_config, helper, cluster).run()

        assert _files(concurrent.output_dir) == files
        assert sorted((r.name, r.namespace) for r in concurrent.records) == sorted(
            (r.name, r.namespace) for r in sequential.records
        )


# ---------------------------------------------------------------------------
# run_snapshot
# ---------------------------------------------------------------------------


class TestRunSnapshot:
    async def test_client_closed_after_run(self, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        """The client is closed after the run."""
        rest = FakeRESTClient()
        install_standard_cluster(rest)
        _add_peer_routes(rest)

        async def _connect(config: KubeSnapConfig) -> FakeRESTClient:
            return rest

        monkeypatch.setattr("kubesnap.app.connect", _connect)
        result = await run_snapshot(KubeSnapConfig(output_dir=str(tmp_path / "snap")))

        assert result.ok
        assert rest.closed

    async def test_client_closed_when_discovery_fails(self, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
        """The client is closed even when discovery fails."""
        rest = FakeRESTClient()

        async def _connect(config: KubeSnapConfig) -> FakeRESTClient:
            return rest

        monkeypatch.setattr("kubesnap.app.connect", _connect)
        with pytest.raises(KubeSnapError):
            await run_snapshot(KubeSnapConfig(output_dir=str(tmp_path / "snap")))
        assert rest.closed
