"""Resource identity types and the schema-agnostic object wrapper.

These types carry no knowledge of any particular resource schema.  Everything
about which resources exist, their scope and their verbs comes from the
server's discovery documents at run time.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from kubesnap.errors import AccessorError, DiscoveryParseError


@dataclass(frozen=True)
class GroupVersion:
    """An API group and version, e.g. ``apps/v1`` or the core ``v1``."""

    group: str
    version: str

    @classmethod
    def parse(cls, value: str) -> GroupVersion:
        """Parse ``group/version`` or a bare core-group ``version``.

        An empty string (or a lone ``/``) parses to the empty GroupVersion.

        Raises:
            DiscoveryParseError: if *value* has more than one ``/``.
        """
        if value in ("", "/"):
            return cls(group="", version="")
        parts = value.split("/")
        if len(parts) == 1:
            return cls(group="", version=value)
        if len(parts) == 2:
            return cls(group=parts[0], version=parts[1])
        raise DiscoveryParseError(value, "unexpected GroupVersion string")

    def with_resource(self, resource: str) -> GroupVersionResource:
        return GroupVersionResource(group=self.group, version=self.version, resource=resource)

    def with_kind(self, kind: str) -> GroupVersionKind:
        return GroupVersionKind(group=self.group, version=self.version, kind=kind)

    def __str__(self) -> str:
        if not self.group:
            return self.version
        return f"{self.group}/{self.version}"


@dataclass(frozen=True)
class GroupVersionResource:
    """Identifies a queryable collection endpoint.

    Plain value type: hashable, compared field by field, safe as a dict key.
    """

    group: str
    version: str
    resource: str

    @property
    def group_version(self) -> GroupVersion:
        return GroupVersion(group=self.group, version=self.version)

    def __str__(self) -> str:
        return f"{self.group_version}, Resource={self.resource}"


@dataclass(frozen=True)
class GroupKind:
    """A kind within an API group, independent of version."""

    group: str
    kind: str

    def __str__(self) -> str:
        if not self.group:
            return self.kind
        return f"{self.kind}.{self.group}"


@dataclass(frozen=True)
class GroupVersionKind:
    """A fully qualified kind."""

    group: str
    version: str
    kind: str

    @property
    def group_kind(self) -> GroupKind:
        return GroupKind(group=self.group, kind=self.kind)

    @property
    def group_version(self) -> GroupVersion:
        return GroupVersion(group=self.group, version=self.version)

    def __str__(self) -> str:
        return f"{self.group_version}, Kind={self.kind}"


@dataclass(frozen=True)
class APIResource:
    """Server-reported metadata for one resource type in a group-version."""

    name: str
    namespaced: bool
    kind: str = ""
    verbs: frozenset[str] = frozenset()

    @property
    def listable(self) -> bool:
        return "list" in self.verbs

    @property
    def is_subresource(self) -> bool:
        return "/" in self.name

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> APIResource:
        return cls(
            name=str(raw.get("name", "")),
            namespaced=bool(raw.get("namespaced", False)),
            kind=str(raw.get("kind", "")),
            verbs=frozenset(str(v) for v in raw.get("verbs") or ()),
        )


@dataclass(frozen=True)
class APIResourceList:
    """All resource descriptors the server reports for one group-version."""

    group_version: str
    resources: tuple[APIResource, ...] = ()


@dataclass(frozen=True)
class APIGroup:
    """A discovered API group with its served versions."""

    name: str
    versions: tuple[str, ...]
    preferred_version: str

    def group_versions(self) -> list[str]:
        """Return ``group/version`` strings in server order."""
        return [str(GroupVersion(self.name, v)) for v in self.versions]

    @property
    def preferred_group_version(self) -> str:
        return str(GroupVersion(self.name, self.preferred_version))


@dataclass(frozen=True)
class ListOptions:
    """Options passed through verbatim to a list call."""

    label_selector: str = ""
    field_selector: str = ""

    def to_query_params(self) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        if self.label_selector:
            params.append(("labelSelector", self.label_selector))
        if self.field_selector:
            params.append(("fieldSelector", self.field_selector))
        return params


@dataclass
class Unstructured:
    """A Kubernetes object held as its raw JSON document.

    Identity fields are read from the document on demand; nothing about the
    object's schema beyond ``apiVersion``, ``kind`` and ``metadata`` is
    assumed.
    """

    obj: dict[str, Any] = field(default_factory=dict)

    @property
    def api_version(self) -> str:
        return str(self.obj.get("apiVersion", ""))

    @property
    def kind(self) -> str:
        return str(self.obj.get("kind", ""))

    @property
    def group_version_kind(self) -> GroupVersionKind:
        return GroupVersion.parse(self.api_version).with_kind(self.kind)

    def _metadata(self) -> Mapping[str, Any]:
        metadata = self.obj.get("metadata")
        if not isinstance(metadata, Mapping):
            raise AccessorError(f"object of kind {self.kind or '<unknown>'!r} has no metadata")
        return metadata

    @property
    def name(self) -> str:
        value = self._metadata().get("name")
        if not isinstance(value, str) or not value:
            raise AccessorError(f"object of kind {self.kind or '<unknown>'!r} has no metadata.name")
        return value

    @property
    def namespace(self) -> str:
        # Cluster-scoped objects have no namespace at all.
        value = self._metadata().get("namespace", "")
        if not isinstance(value, str):
            raise AccessorError(f"object {self.name!r} has a non-string metadata.namespace")
        return value

    @property
    def resource_version(self) -> str:
        value = self._metadata().get("resourceVersion")
        if not isinstance(value, str) or not value:
            raise AccessorError(f"object {self.name!r} has no metadata.resourceVersion")
        return value

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.obj)
