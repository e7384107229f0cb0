"""Raw REST, discovery and dynamic resource clients.

Every call goes through ``RESTClient``, a thin wrapper over the
kubernetes-asyncio ``ApiClient`` that issues requests by path and returns
undecoded bodies.  No generated model classes are involved, so resources the
generated client has never heard of (CRDs, aggregated APIs) are handled the
same way as core ones.

Library exceptions never escape this module: transport failures become
``APIError`` and discovery failures become ``DiscoveryError``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio.client import ApiClient  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubesnap.errors import APIError, DiscoveryError
from kubesnap.models.resources import (
    APIGroup,
    APIResource,
    APIResourceList,
    GroupVersion,
    GroupVersionResource,
    ListOptions,
    Unstructured,
)

_log = structlog.get_logger(component="dynamic.client")

_JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


def _status_message(data: bytes) -> str:
    """Pull ``message`` out of a metav1.Status error body, if there is one."""
    try:
        payload = json.loads(data)
    except ValueError:
        return data.decode("utf-8", errors="replace")[:200]
    if isinstance(payload, Mapping):
        return str(payload.get("message", ""))
    return ""


class RESTClient:
    """Issues requests by path against the API server.

    Args:
        api_client: A configured kubernetes-asyncio ``ApiClient``.
    """

    def __init__(self, api_client: ApiClient) -> None:
        self._api_client = api_client

    async def request(
        self,
        method: str,
        path: str,
        query: list[tuple[str, str]] | None = None,
        body: Any = None,
    ) -> bytes:
        """Perform one request and return the raw response body.

        Raises:
            APIError: on transport failure or a non-2xx response.
        """
        try:
            response = await self._api_client.call_api(
                path,
                method,
                query_params=query or [],
                header_params=dict(_JSON_HEADERS),
                body=body,
                auth_settings=["BearerToken"],
                _preload_content=False,
                _return_http_data_only=True,
            )
            data = await response.read()
        except ApiException as exc:
            raise APIError(f"{method} {path}: {exc.reason}", status=exc.status or 0, path=path) from exc
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise APIError(f"{method} {path}: {exc}", path=path) from exc

        if not 200 <= response.status <= 299:
            message = _status_message(data) or str(response.reason)
            raise APIError(f"{method} {path}: {message}", status=response.status, path=path)
        return data

    async def request_json(
        self,
        method: str,
        path: str,
        query: list[tuple[str, str]] | None = None,
        body: Any = None,
    ) -> Any:
        data = await self.request(method, path, query=query, body=body)
        try:
            return json.loads(data)
        except ValueError as exc:
            raise APIError(f"{method} {path}: response is not JSON", path=path) from exc

    async def request_text(self, method: str, path: str, query: list[tuple[str, str]] | None = None) -> str:
        data = await self.request(method, path, query=query)
        return data.decode("utf-8", errors="replace")

    async def close(self) -> None:
        await self._api_client.close()


def group_version_path(group_version: GroupVersion) -> str:
    """``/api/v1`` for the core group, ``/apis/<group>/<version>`` otherwise."""
    if not group_version.group:
        return f"/api/{group_version.version}"
    return f"/apis/{group_version.group}/{group_version.version}"


def _list_field(doc: Mapping[str, Any], key: str, where: str) -> list[Any]:
    """``doc[key]`` as a list; absent or null reads as empty."""
    value = doc.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DiscoveryError(f"malformed {key!r} in {where}: expected a list, got {type(value).__name__}")
    return value


class DiscoveryClient:
    """Reads the server's API catalog.

    Nothing is cached: each call fetches fresh documents, because the catalog
    can change between passes (CRDs installed or removed mid-run).
    """

    def __init__(self, rest: RESTClient) -> None:
        self._rest = rest

    async def _get_document(self, path: str) -> Mapping[str, Any]:
        try:
            doc = await self._rest.request_json("GET", path)
        except APIError as exc:
            raise DiscoveryError(f"fetching discovery document {path}: {exc}") from exc
        if not isinstance(doc, Mapping):
            raise DiscoveryError(f"discovery document {path} is not an object")
        return doc

    async def server_groups(self) -> list[APIGroup]:
        """Return the core group followed by every named group."""
        groups: list[APIGroup] = []

        core = await self._get_document("/api")
        core_versions = tuple(str(v) for v in _list_field(core, "versions", "/api"))
        if core_versions:
            groups.append(APIGroup(name="", versions=core_versions, preferred_version=core_versions[0]))

        apis = await self._get_document("/apis")
        for raw in _list_field(apis, "groups", "/apis"):
            if not isinstance(raw, Mapping) or not isinstance(raw.get("name"), str) or not raw["name"]:
                raise DiscoveryError(f"malformed API group entry: {raw!r}")
            where = f"API group {raw['name']!r}"
            versions: list[str] = []
            for entry in _list_field(raw, "versions", where):
                if not isinstance(entry, Mapping) or not isinstance(entry.get("version"), str) or not entry["version"]:
                    raise DiscoveryError(f"malformed version entry in {where}: {entry!r}")
                versions.append(entry["version"])
            if not versions:
                continue
            preferred = raw.get("preferredVersion") or {}
            if not isinstance(preferred, Mapping):
                raise DiscoveryError(f"malformed preferredVersion in {where}: {preferred!r}")
            groups.append(
                APIGroup(
                    name=raw["name"],
                    versions=tuple(versions),
                    preferred_version=str(preferred.get("version") or versions[0]),
                )
            )
        return groups

    async def server_resources_for_group_version(self, group_version: str) -> APIResourceList:
        """Return every resource (subresources included) served at *group_version*."""
        path = group_version_path(GroupVersion.parse(group_version))
        doc = await self._get_document(path)
        resources = []
        for raw in _list_field(doc, "resources", path):
            if (
                not isinstance(raw, Mapping)
                or not isinstance(raw.get("name"), str)
                or not raw["name"]
                or not isinstance(raw.get("verbs") or [], list)
            ):
                raise DiscoveryError(f"malformed resource entry in {path}: {raw!r}")
            resources.append(APIResource.from_dict(raw))
        return APIResourceList(
            group_version=str(doc.get("groupVersion") or group_version),
            resources=tuple(resources),
        )

    async def server_preferred_resources(self) -> list[APIResourceList]:
        """One resource list per group, at the group's preferred version.

        Subresources (``pods/log``, ``deployments/scale``) are dropped: they
        are not collections and cannot be listed on their own.
        """
        preferred: list[APIResourceList] = []
        for group in await self.server_groups():
            resource_list = await self.server_resources_for_group_version(group.preferred_group_version)
            preferred.append(
                APIResourceList(
                    group_version=resource_list.group_version,
                    resources=tuple(r for r in resource_list.resources if not r.is_subresource),
                )
            )
        _log.debug("discovered_preferred_resources", group_versions=len(preferred))
        return preferred

    async def server_group_resources(self) -> list[tuple[APIGroup, list[APIResourceList]]]:
        """Every group with the resource lists of all of its served versions."""
        result: list[tuple[APIGroup, list[APIResourceList]]] = []
        for group in await self.server_groups():
            lists = [await self.server_resources_for_group_version(gv) for gv in group.group_versions()]
            result.append((group, lists))
        return result


def resource_path(gvr: GroupVersionResource, namespace: str = "", name: str = "") -> str:
    """Build the REST path for a collection, or one object in it."""
    path = group_version_path(gvr.group_version)
    if namespace:
        path += f"/namespaces/{namespace}"
    path += f"/{gvr.resource}"
    if name:
        path += f"/{name}"
    return path


class DynamicClient:
    """Generic list/get/create keyed by GroupVersionResource.

    No method knows anything about the schema of what it reads or writes.
    """

    def __init__(self, rest: RESTClient) -> None:
        self._rest = rest

    async def list(
        self,
        gvr: GroupVersionResource,
        options: ListOptions | None = None,
        namespace: str = "",
    ) -> list[Unstructured]:
        """List *gvr*, optionally restricted to one namespace's path.

        Items in typed lists come back without ``apiVersion``/``kind``; they
        are filled in from the list envelope so every returned object is
        self-describing.
        """
        path = resource_path(gvr, namespace=namespace)
        query = (options or ListOptions()).to_query_params()
        try:
            doc = await self._rest.request_json("GET", path, query=query)
        except APIError as exc:
            raise APIError(str(exc), status=exc.status, path=path, gvr=gvr) from exc
        if not isinstance(doc, Mapping):
            raise APIError(f"GET {path}: list response is not an object", path=path, gvr=gvr)

        api_version = str(doc.get("apiVersion", ""))
        list_kind = str(doc.get("kind", ""))
        item_kind = list_kind.removesuffix("List") if list_kind.endswith("List") else ""

        items: list[Unstructured] = []
        for raw in doc.get("items") or ():
            if not isinstance(raw, dict):
                continue
            if api_version:
                raw.setdefault("apiVersion", api_version)
            if item_kind:
                raw.setdefault("kind", item_kind)
            items.append(Unstructured(raw))
        return items

    async def get(self, gvr: GroupVersionResource, name: str, namespace: str = "") -> Unstructured:
        path = resource_path(gvr, namespace=namespace, name=name)
        try:
            doc = await self._rest.request_json("GET", path)
        except APIError as exc:
            raise APIError(str(exc), status=exc.status, path=path, gvr=gvr) from exc
        if not isinstance(doc, dict):
            raise APIError(f"GET {path}: response is not an object", path=path, gvr=gvr)
        return Unstructured(doc)

    async def create(self, gvr: GroupVersionResource, namespace: str, obj: Unstructured) -> Unstructured:
        path = resource_path(gvr, namespace=namespace)
        try:
            doc = await self._rest.request_json("POST", path, body=obj.to_dict())
        except APIError as exc:
            raise APIError(str(exc), status=exc.status, path=path, gvr=gvr) from exc
        if not isinstance(doc, dict):
            raise APIError(f"POST {path}: response is not an object", path=path, gvr=gvr)
        return Unstructured(doc)
