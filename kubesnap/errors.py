"""Exception taxonomy for kubesnap.

Pass-fatal (abort the scope pass that raised them):
    DiscoveryError       -- discovery document unreachable or malformed.
    DiscoveryParseError  -- a discovered group-version string cannot be parsed.

Operation-fatal (abort only the operation that raised them):
    MappingError         -- a kind/version cannot be resolved to an identifier.
    AccessorError        -- identity fields missing from an object.
    APIError             -- a single REST call failed.
    SerializationError   -- the snapshot sink could not persist a result.

Non-fatal (logged or recorded, never propagated to the pass caller):
    LabelSelectorParseError -- invalid selector; the pass runs unfiltered.
    PerResourceQueryError   -- one identifier's list call failed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kubesnap.models.resources import GroupVersionResource


class KubeSnapError(Exception):
    """Base class for every error raised by kubesnap."""


class DiscoveryError(KubeSnapError):
    """The discovery source is unreachable or returned malformed data."""


class DiscoveryParseError(DiscoveryError):
    """A group-version string from discovery could not be parsed."""

    def __init__(self, group_version: str, reason: str) -> None:
        super().__init__(f"parsing group version {group_version!r}: {reason}")
        self.group_version = group_version
        self.reason = reason


class MappingError(KubeSnapError):
    """A group/kind/version could not be resolved to a queryable resource."""


class AccessorError(KubeSnapError):
    """An object lacks the metadata field being extracted."""


class LabelSelectorParseError(KubeSnapError, ValueError):
    """The configured label selector is not valid selector syntax."""

    def __init__(self, selector: str, reason: str) -> None:
        super().__init__(f"label selector {selector!r}: {reason}")
        self.selector = selector
        self.reason = reason


class APIError(KubeSnapError):
    """A REST call against the API server failed.

    ``status`` is the HTTP status code, or 0 when the request never got a
    response (connection refused, TLS failure, ...).
    """

    def __init__(
        self,
        message: str,
        status: int = 0,
        path: str = "",
        gvr: GroupVersionResource | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.path = path
        self.gvr = gvr


class PerResourceQueryError(KubeSnapError):
    """A list query for one resource identifier failed."""

    def __init__(self, gvr: GroupVersionResource, cause: BaseException) -> None:
        super().__init__(f"listing resource {gvr}: {cause}")
        self.gvr = gvr
        self.cause = cause


class SerializationError(KubeSnapError):
    """The snapshot sink failed to write a result."""

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"serializing {path}: {cause}")
        self.path = path
        self.cause = cause
