"""Resource selection: which collections to list for one scope pass."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from typing import Protocol

import structlog

from kubesnap.models.config import FilterConfig
from kubesnap.models.resources import APIResourceList, GroupVersion, GroupVersionResource

_log = structlog.get_logger(component="collector.selector")


class PreferredResourceSource(Protocol):
    async def server_preferred_resources(self) -> list[APIResourceList]: ...


def select_from_discovery(
    resource_lists: Iterable[APIResourceList],
    namespaced: bool,
    allowed: Collection[str] = (),
) -> list[GroupVersionResource]:
    """Filter a discovery snapshot down to the identifiers to list.

    A descriptor is kept when its plural name is in *allowed* (or *allowed*
    is empty), its scope matches *namespaced*, and it supports ``list``.
    Output is deduplicated and keeps discovery order.

    Raises:
        DiscoveryParseError: if a group-version string is malformed.
    """
    selected: list[GroupVersionResource] = []
    seen: set[GroupVersionResource] = set()
    for resource_list in resource_lists:
        group_version = GroupVersion.parse(resource_list.group_version)
        for resource in resource_list.resources:
            if allowed and resource.name not in allowed:
                continue
            if resource.namespaced != namespaced:
                continue
            # Get-only endpoints are not collections.
            if not resource.listable:
                continue
            gvr = group_version.with_resource(resource.name)
            if gvr in seen:
                continue
            seen.add(gvr)
            selected.append(gvr)
    return selected


async def select_resources(
    discovery: PreferredResourceSource,
    namespace: str | None,
    filters: FilterConfig,
) -> list[GroupVersionResource]:
    """Fetch discovery fresh and select identifiers for one scope pass.

    ``namespace=None`` selects cluster-scoped resources; any string (even
    empty) selects namespaced ones.

    Raises:
        DiscoveryError: discovery unreachable or malformed.
        DiscoveryParseError: a group-version string is malformed.
    """
    resource_lists = await discovery.server_preferred_resources()
    selected = select_from_discovery(resource_lists, namespace is not None, filters.resources)
    _log.debug(
        "resources_selected",
        scope=namespace if namespace is not None else "<cluster>",
        count=len(selected),
    )
    return selected
