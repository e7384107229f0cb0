"""Run-scoped ledger of every attempted query."""

from __future__ import annotations

import json
import threading
from pathlib import Path

import structlog

from kubesnap.errors import SerializationError
from kubesnap.models.records import QueryOutcome, QueryRecord
from kubesnap.observability.metrics import QueryMetrics

_log = structlog.get_logger(component="collector.recorder")


class QueryRecorder:
    """Append-only record of one run's queries.

    ``record_query`` never raises and never drops a record, and appends are
    serialised by a lock so concurrent executors can share one recorder.
    The same query name may appear many times, once per scope it ran in.
    """

    def __init__(self, metrics: QueryMetrics | None = None) -> None:
        self._records: list[QueryRecord] = []
        self._lock = threading.Lock()
        self.metrics = metrics or QueryMetrics()

    def record_query(
        self,
        name: str,
        namespace: str,
        duration_seconds: float,
        error: BaseException | None = None,
        outcome: QueryOutcome | None = None,
    ) -> QueryRecord:
        """Append one record.

        *outcome* defaults to SUCCESS when *error* is None and FAILURE
        otherwise; pass it explicitly for TIMEOUT and CANCELLED.
        """
        if outcome is None:
            outcome = QueryOutcome.SUCCESS if error is None else QueryOutcome.FAILURE
        record = QueryRecord(
            name=name,
            namespace=namespace,
            duration_seconds=duration_seconds,
            outcome=outcome,
            error=str(error) if error is not None else "",
        )
        with self._lock:
            self._records.append(record)

        self.metrics.observe_query(outcome.value, duration_seconds)
        return record

    @property
    def records(self) -> tuple[QueryRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def failures(self) -> list[QueryRecord]:
        return [r for r in self.records if not r.succeeded]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def dump_query_data(self, path: Path) -> None:
        """Write every record to *path* as a JSON array.

        Raises:
            SerializationError: if the file cannot be written.
        """
        payload = [record.to_dict() for record in self.records]
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as exc:
            raise SerializationError(str(path), exc) from exc
        _log.info("query_data_written", path=str(path), records=len(payload))
