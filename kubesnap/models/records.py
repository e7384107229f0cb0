"""Query ledger data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class QueryOutcome(StrEnum):
    """How a single attempted query ended."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class QueryRecord:
    """One attempted operation: what, where, how long, how it ended.

    ``namespace`` is the scope string: the namespace name for namespaced
    passes and ``""`` for cluster-scoped work.
    """

    name: str
    namespace: str
    duration_seconds: float
    outcome: QueryOutcome
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is QueryOutcome.SUCCESS

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "queryname": self.name,
            "namespace": self.namespace,
            "time": self.duration_seconds,
            "outcome": self.outcome.value,
        }
        if self.error:
            payload["error"] = self.error
        return payload
