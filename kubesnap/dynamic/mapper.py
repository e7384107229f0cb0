"""Kind-to-resource mapping and generic object operations.

``RESTMapper`` answers "which collection serves kind K at version V?" using
the discovery catalog.  ``ResourceMapper`` bundles it with the discovery and
dynamic clients so callers bound to one cluster have a single handle for
resolution, identity extraction and generic creation.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from kubesnap.dynamic.client import DiscoveryClient, DynamicClient, RESTClient
from kubesnap.errors import APIError, MappingError
from kubesnap.models.resources import (
    APIGroup,
    APIResourceList,
    GroupKind,
    GroupVersion,
    GroupVersionKind,
    GroupVersionResource,
    Unstructured,
)

_log = structlog.get_logger(component="dynamic.mapper")


@dataclass(frozen=True)
class RESTMapping:
    """The collection that serves one kind at one version."""

    gvk: GroupVersionKind
    gvr: GroupVersionResource
    namespaced: bool


class RESTMapper:
    """Resolves group/kind/version to a RESTMapping.

    Built once from a discovery snapshot; it is a point-in-time view and must
    be rebuilt (``ResourceMapper.refresh``) after the catalog changes.
    """

    def __init__(self, mappings: Iterable[RESTMapping], group_versions: dict[str, list[str]]) -> None:
        self._mappings: dict[GroupVersionKind, RESTMapping] = {}
        for mapping in mappings:
            self._mappings.setdefault(mapping.gvk, mapping)
        # group name -> versions, preferred first
        self._group_versions = group_versions

    @classmethod
    def from_group_resources(cls, group_resources: Iterable[tuple[APIGroup, list[APIResourceList]]]) -> RESTMapper:
        mappings: list[RESTMapping] = []
        group_versions: dict[str, list[str]] = {}
        for group, resource_lists in group_resources:
            ordered = [group.preferred_version] + [v for v in group.versions if v != group.preferred_version]
            group_versions[group.name] = ordered
            for resource_list in resource_lists:
                gv = GroupVersion.parse(resource_list.group_version)
                for resource in resource_list.resources:
                    if resource.is_subresource or not resource.kind:
                        continue
                    mappings.append(
                        RESTMapping(
                            gvk=gv.with_kind(resource.kind),
                            gvr=gv.with_resource(resource.name),
                            namespaced=resource.namespaced,
                        )
                    )
        return cls(mappings, group_versions)

    def rest_mapping(self, group_kind: GroupKind, *versions: str) -> RESTMapping:
        """Resolve *group_kind* at the first of *versions* the server serves.

        With no versions given, the group's preferred version is tried first,
        then the remaining served versions in server order.

        Raises:
            MappingError: if no requested version serves the kind.
        """
        candidates = [v for v in versions if v] or self._group_versions.get(group_kind.group, [])
        for version in candidates:
            mapping = self._mappings.get(GroupVersionKind(group_kind.group, version, group_kind.kind))
            if mapping is not None:
                return mapping
        tried = ", ".join(candidates) or "<none>"
        raise MappingError(f"no matches for kind {group_kind} in version(s) {tried}")


class ResourceMapper:
    """One cluster's discovery, mapping and dynamic query handle.

    Args:
        client:      Generic list/get/create client.
        discovery:   Source of fresh discovery documents.
        rest_mapper: Kind resolution built from discovery.
    """

    def __init__(self, client: DynamicClient, discovery: DiscoveryClient, rest_mapper: RESTMapper) -> None:
        self.client = client
        self.discovery = discovery
        self.rest_mapper = rest_mapper

    @classmethod
    async def for_cluster(cls, rest: RESTClient) -> ResourceMapper:
        """Bind to the cluster behind *rest*, building the kind mapping.

        Raises:
            DiscoveryError: if the catalog cannot be read.
        """
        discovery = DiscoveryClient(rest)
        rest_mapper = RESTMapper.from_group_resources(await discovery.server_group_resources())
        return cls(DynamicClient(rest), discovery, rest_mapper)

    async def refresh(self) -> None:
        """Rebuild the kind mapping from a fresh discovery crawl."""
        self.rest_mapper = RESTMapper.from_group_resources(await self.discovery.server_group_resources())

    def resolve(self, group_kind: GroupKind, version: str = "") -> RESTMapping:
        return self.rest_mapper.rest_mapping(group_kind, version)

    def resolve_identifier(self, group_kind: GroupKind, version: str = "") -> GroupVersionResource:
        """Return the collection endpoint serving *group_kind* at *version*.

        Raises:
            MappingError: if the server does not serve that kind/version.
                Retrying is pointless until ``refresh()`` has been called.
        """
        return self.resolve(group_kind, version).gvr

    @staticmethod
    def name(obj: Unstructured) -> str:
        return obj.name

    @staticmethod
    def namespace(obj: Unstructured) -> str:
        return obj.namespace

    @staticmethod
    def resource_version(obj: Unstructured) -> str:
        return obj.resource_version

    async def create_object(self, obj: Unstructured) -> Unstructured:
        """Create any object, resolving its collection from apiVersion/kind.

        Cluster-scoped kinds are created without a namespace even if the
        object carries one.

        Raises:
            MappingError: the object's kind is not served.
            AccessorError: the object has no name or malformed metadata.
            APIError: the create call failed.
        """
        gvk = obj.group_version_kind
        mapping = self.resolve(gvk.group_kind, gvk.version)
        name = self.name(obj)
        namespace = self.namespace(obj) if mapping.namespaced else ""

        try:
            created = await self.client.create(mapping.gvr, namespace, obj)
        except APIError as exc:
            raise APIError(
                f"creating {gvk.kind} {name!r} via {mapping.gvr}: {exc}",
                status=exc.status,
                path=exc.path,
                gvr=mapping.gvr,
            ) from exc
        _log.info("object_created", kind=gvk.kind, name=name, namespace=namespace, gvr=str(mapping.gvr))
        return created
