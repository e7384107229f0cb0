"""Collection engine for kubesnap.

Submodules
----------
selector  -- select_resources: discovery + filters -> identifiers for one scope pass.
queries   -- query_resources: one timed, recorded list call per identifier.
recorder  -- QueryRecorder: append-only ledger of every attempted query.
sink      -- SnapshotSink: on-disk layout of collected results.
hosts     -- query_host_data: node configz/healthz peer operation.
podlogs   -- query_pod_logs: pod log peer operation.
"""

from kubesnap.collector.queries import query_resources
from kubesnap.collector.recorder import QueryRecorder
from kubesnap.collector.selector import select_resources
from kubesnap.collector.sink import SnapshotSink

__all__ = ["QueryRecorder", "SnapshotSink", "query_resources", "select_resources"]
