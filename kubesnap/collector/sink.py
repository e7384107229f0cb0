"""Snapshot sink: where collected results land on disk.

Layout under the output directory::

    resources/cluster/<plural>.json          cluster-scoped resources
    resources/ns/<namespace>/<plural>.json   namespaced resources
    hosts/<node>/{configz,healthz}.json      node host data
    podlogs/<namespace>/<pod>/logs/<container>.txt
    meta/{query-time,config}.json, meta/metrics.prom
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from kubesnap.errors import SerializationError
from kubesnap.models.resources import Unstructured

NS_RESOURCE_LOCATION = "resources/ns"
CLUSTER_RESOURCE_LOCATION = "resources/cluster"
HOSTS_LOCATION = "hosts"
POD_LOGS_LOCATION = "podlogs"
META_LOCATION = "meta"

RESOURCE_FILE_EXTENSION = ".json"


def _default(obj: Any) -> Any:
    if isinstance(obj, Unstructured):
        return obj.obj
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


class SnapshotSink:
    """Persists results beneath a single output directory."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def resource_dir(self, namespace: str | None) -> Path:
        if namespace is None:
            return self.root / CLUSTER_RESOURCE_LOCATION
        return self.root / NS_RESOURCE_LOCATION / namespace

    def hosts_dir(self, node: str) -> Path:
        return self.root / HOSTS_LOCATION / node

    def pod_logs_dir(self, namespace: str, pod: str) -> Path:
        return self.root / POD_LOGS_LOCATION / namespace / pod / "logs"

    @property
    def meta_dir(self) -> Path:
        return self.root / META_LOCATION

    def serialize(self, obj: Any, directory: Path, filename: str) -> Path:
        """Write *obj* as JSON to ``directory/filename``.

        Raises:
            SerializationError: if the object cannot be encoded or written.
        """
        target = directory / filename
        try:
            encoded = json.dumps(obj, default=_default, indent=2)
            directory.mkdir(parents=True, exist_ok=True)
            target.write_text(encoded, encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise SerializationError(str(target), exc) from exc
        return target

    def write_text(self, text: str, directory: Path, filename: str) -> Path:
        target = directory / filename
        try:
            directory.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise SerializationError(str(target), exc) from exc
        return target
