"""Shared fixtures: an in-memory API server behind a fake RESTClient.

The fake answers by (method, path) so the real DiscoveryClient,
DynamicClient and collection code run unmodified on top of it.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable
from typing import Any

import pytest

from kubesnap.dynamic.client import DiscoveryClient, DynamicClient, RESTClient
from kubesnap.dynamic.mapper import RESTMapper, ResourceMapper
from kubesnap.errors import APIError
from kubesnap.models.config import KubeSnapConfig
from kubesnap.models.resources import APIGroup, APIResource, APIResourceList

Route = Any  # dict | list | str | bytes | BaseException | Callable[[query, body], Any]


class FakeRESTClient(RESTClient):
    """RESTClient whose responses come from a route table instead of a server."""

    def __init__(self, routes: dict[tuple[str, str], Route] | None = None) -> None:
        self.routes: dict[tuple[str, str], Route] = dict(routes or {})
        self.calls: list[tuple[str, str, tuple[tuple[str, str], ...], Any]] = []
        self.closed = False

    def add(self, path: str, response: Route, method: str = "GET") -> None:
        self.routes[(method, path)] = response

    async def request(
        self,
        method: str,
        path: str,
        query: list[tuple[str, str]] | None = None,
        body: Any = None,
    ) -> bytes:
        self.calls.append((method, path, tuple(query or ()), body))
        try:
            response = self.routes[(method, path)]
        except KeyError:
            raise APIError(f"{method} {path}: the server could not find the requested resource", 404, path) from None
        if callable(response) and not isinstance(response, BaseException):
            response = response(dict(query or ()), body)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, bytes):
            return response
        if isinstance(response, str):
            return response.encode()
        return json.dumps(response).encode()

    def paths_called(self, method: str = "GET") -> list[str]:
        return [path for m, path, _, _ in self.calls if m == method]

    async def close(self) -> None:
        self.closed = True


def resource(name: str, namespaced: bool, kind: str = "", verbs: Iterable[str] = ("list", "get")) -> dict[str, Any]:
    return {"name": name, "namespaced": namespaced, "kind": kind, "verbs": list(verbs)}


def api_resource(name: str, namespaced: bool, verbs: Iterable[str] = ("list", "get"), kind: str = "") -> APIResource:
    return APIResource(name=name, namespaced=namespaced, kind=kind, verbs=frozenset(verbs))


def install_catalog(rest: FakeRESTClient, catalog: dict[str, list[dict[str, Any]]]) -> None:
    """Serve discovery documents for *catalog* (group-version -> resources).

    Versions of one group are served in insertion order; the first one is
    the preferred version.
    """
    core_versions: list[str] = []
    groups: dict[str, list[str]] = {}
    for group_version, resources in catalog.items():
        if "/" in group_version:
            group, version = group_version.split("/")
            groups.setdefault(group, []).append(version)
            path = f"/apis/{group_version}"
        else:
            core_versions.append(group_version)
            path = f"/api/{group_version}"
        rest.add(path, {"kind": "APIResourceList", "groupVersion": group_version, "resources": resources})

    rest.add("/api", {"kind": "APIVersions", "versions": core_versions})
    rest.add(
        "/apis",
        {
            "kind": "APIGroupList",
            "groups": [
                {
                    "name": group,
                    "versions": [{"groupVersion": f"{group}/{v}", "version": v} for v in versions],
                    "preferredVersion": {"groupVersion": f"{group}/{versions[0]}", "version": versions[0]},
                }
                for group, versions in groups.items()
            ],
        },
    )


def obj(api_version: str, kind: str, name: str, namespace: str = "", **extra: Any) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "resourceVersion": "1"}
    if namespace:
        metadata["namespace"] = namespace
    return {"apiVersion": api_version, "kind": kind, "metadata": metadata, **extra}


def list_route(api_version: str, list_kind: str, items: list[dict[str, Any]]) -> Callable[[dict[str, str], Any], Any]:
    """A list endpoint honouring ``fieldSelector=metadata.namespace=<ns>``.

    Items are returned without apiVersion/kind, the way typed lists are.
    """

    def _respond(query: dict[str, str], body: Any) -> dict[str, Any]:
        selected = items
        field_selector = query.get("fieldSelector", "")
        if field_selector.startswith("metadata.namespace="):
            ns = field_selector.split("=", 1)[1]
            selected = [i for i in items if i["metadata"].get("namespace") == ns]
        stripped = [{k: v for k, v in i.items() if k not in ("apiVersion", "kind")} for i in selected]
        return {"apiVersion": api_version, "kind": list_kind, "metadata": {}, "items": stripped}

    return _respond


# ---------------------------------------------------------------------------
# Standard cluster
# ---------------------------------------------------------------------------

STANDARD_CATALOG: dict[str, list[dict[str, Any]]] = {
    "v1": [
        resource("namespaces", False, "Namespace"),
        resource("nodes", False, "Node"),
        resource("pods", True, "Pod", ("create", "delete", "get", "list", "watch")),
        resource("pods/log", True, "Pod", ("get",)),
        resource("configmaps", True, "ConfigMap"),
        resource("bindings", True, "Binding", ("create",)),
    ],
    "apps/v1": [
        resource("deployments", True, "Deployment"),
        resource("deployments/scale", True, "Scale", ("get", "patch", "update")),
    ],
    "example.com/v1alpha1": [
        resource("widgets", True, "Widget"),
    ],
}


def install_standard_cluster(rest: FakeRESTClient) -> None:
    install_catalog(rest, STANDARD_CATALOG)
    rest.add(
        "/api/v1/namespaces",
        list_route(
            "v1",
            "NamespaceList",
            [obj("v1", "Namespace", "default"), obj("v1", "Namespace", "kube-system"), obj("v1", "Namespace", "team-a")],
        ),
    )
    rest.add("/api/v1/nodes", list_route("v1", "NodeList", [obj("v1", "Node", "node-1")]))
    rest.add(
        "/api/v1/pods",
        list_route(
            "v1",
            "PodList",
            [
                obj("v1", "Pod", "web-1", "default", spec={"containers": [{"name": "web"}]}),
                obj("v1", "Pod", "dns-1", "kube-system", spec={"containers": [{"name": "coredns"}]}),
            ],
        ),
    )
    rest.add("/api/v1/configmaps", list_route("v1", "ConfigMapList", []))
    rest.add(
        "/apis/apps/v1/deployments",
        list_route("apps/v1", "DeploymentList", [obj("apps/v1", "Deployment", "web", "default")]),
    )
    rest.add(
        "/apis/example.com/v1alpha1/widgets",
        list_route("example.com/v1alpha1", "WidgetList", [obj("example.com/v1alpha1", "Widget", "w", "team-a")]),
    )


@pytest.fixture
def fake_rest() -> FakeRESTClient:
    rest = FakeRESTClient()
    install_standard_cluster(rest)
    return rest


@pytest.fixture
def helper(fake_rest: FakeRESTClient) -> ResourceMapper:
    group_resources = [
        (APIGroup(name="", versions=("v1",), preferred_version="v1"), [_resource_list("v1")]),
        (APIGroup(name="apps", versions=("v1",), preferred_version="v1"), [_resource_list("apps/v1")]),
        (
            APIGroup(name="example.com", versions=("v1alpha1",), preferred_version="v1alpha1"),
            [_resource_list("example.com/v1alpha1")],
        ),
    ]
    return ResourceMapper(
        DynamicClient(fake_rest),
        DiscoveryClient(fake_rest),
        RESTMapper.from_group_resources(group_resources),
    )


def _resource_list(group_version: str) -> APIResourceList:
    return APIResourceList(
        group_version=group_version,
        resources=tuple(APIResource.from_dict(r) for r in STANDARD_CATALOG[group_version]),
    )


@pytest.fixture
def config(tmp_path) -> KubeSnapConfig:
    return KubeSnapConfig(output_dir=str(tmp_path / "results"))
