"""Query execution for one scope pass.

Each selected identifier gets exactly one list call, timed and recorded
whatever its outcome.  Only failures that stop the work list from being built
(discovery, group-version parsing) reach the caller; a failing resource is
recorded and the pass moves on.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import structlog

from kubesnap.collector.recorder import QueryRecorder
from kubesnap.collector.selector import select_resources
from kubesnap.collector.sink import RESOURCE_FILE_EXTENSION, SnapshotSink
from kubesnap.dynamic.mapper import ResourceMapper
from kubesnap.errors import APIError, DiscoveryError, LabelSelectorParseError, PerResourceQueryError
from kubesnap.labels import parse_label_selector
from kubesnap.models.config import KubeSnapConfig
from kubesnap.models.records import QueryOutcome, QueryRecord
from kubesnap.models.resources import GroupVersionResource, ListOptions, Unstructured

_log = structlog.get_logger(component="collector.queries")

ListQuery = Callable[[], Awaitable[list[Unstructured]]]
ObjectQuery = Callable[[], Awaitable[Any]]


def build_list_options(label_selector: str, namespace: str | None) -> ListOptions:
    """Label selector passed through verbatim; namespace via field selector.

    An unparseable selector is logged and dropped so the query runs
    unfiltered rather than failing.
    """
    selector = ""
    if label_selector:
        try:
            parse_label_selector(label_selector)
        except LabelSelectorParseError as exc:
            _log.warning("label_selector_invalid", selector=label_selector, reason=exc.reason)
        else:
            selector = label_selector
    field_selector = f"metadata.namespace={namespace}" if namespace else ""
    return ListOptions(label_selector=selector, field_selector=field_selector)


async def timed_list_query(sink: SnapshotSink, outdir: Path, filename: str, lister: ListQuery) -> int:
    """Run *lister* and persist a non-empty result.

    Empty results are not written.  Returns the number of items.
    """
    items = await lister()
    if items:
        sink.serialize(items, outdir, filename)
    return len(items)


async def timed_object_query(sink: SnapshotSink, outdir: Path, filename: str, getter: ObjectQuery) -> None:
    """Run *getter* and persist whatever it returns."""
    obj = await getter()
    sink.serialize(obj, outdir, filename)


async def timed_query(
    recorder: QueryRecorder,
    name: str,
    namespace: str,
    fn: Callable[[], Awaitable[object]],
    timeout: float = 0.0,
) -> QueryRecord:
    """Run *fn* and record exactly one QueryRecord for it.

    Errors are captured in the record, not raised.  Cancellation is the one
    exception: it is recorded as CANCELLED and then re-raised so the task
    actually stops.
    """
    start = time.monotonic()
    deadline = asyncio.timeout(timeout if timeout > 0 else None)
    try:
        async with deadline:
            await fn()
    except TimeoutError as exc:
        elapsed = time.monotonic() - start
        if not deadline.expired():
            # Raised by the query itself, not by our deadline.
            _log.warning("query_failed", query=name, namespace=namespace, error=str(exc))
            return recorder.record_query(name, namespace, elapsed, exc)
        _log.warning("query_timed_out", query=name, namespace=namespace, timeout=timeout)
        return recorder.record_query(
            name,
            namespace,
            elapsed,
            TimeoutError(f"timed out after {timeout}s"),
            outcome=QueryOutcome.TIMEOUT,
        )
    except asyncio.CancelledError as exc:
        recorder.record_query(name, namespace, time.monotonic() - start, exc, outcome=QueryOutcome.CANCELLED)
        raise
    except Exception as exc:
        elapsed = time.monotonic() - start
        _log.warning("query_failed", query=name, namespace=namespace, error=str(exc))
        return recorder.record_query(name, namespace, elapsed, exc)
    return recorder.record_query(name, namespace, time.monotonic() - start)


async def query_resources(
    helper: ResourceMapper,
    recorder: QueryRecorder,
    namespace: str | None,
    config: KubeSnapConfig,
    sink: SnapshotSink,
) -> list[QueryRecord]:
    """Run one scope pass: select, then list every selected resource.

    ``namespace=None`` is the cluster-scoped pass; otherwise only resources
    in *namespace* are collected, written under ``resources/ns/<namespace>``.

    Returns the records produced by this pass, one per selected identifier.

    Raises:
        DiscoveryError: the resource list could not be built; nothing was
            queried.
    """
    scope = namespace if namespace is not None else ""
    if namespace is not None:
        _log.info("running_namespace_query", namespace=namespace)
    else:
        _log.info("running_cluster_queries")

    outdir = sink.resource_dir(namespace)
    options = build_list_options(config.filters.label_selector, namespace)

    try:
        resources = await select_resources(helper.discovery, namespace, config.filters)
    except DiscoveryError as exc:
        recorder.metrics.discovery_failures_total.inc()
        _log.error("choosing_resources_failed", namespace=scope, error=str(exc))
        raise

    async def _query(gvr: GroupVersionResource) -> QueryRecord:
        async def lister() -> list[Unstructured]:
            try:
                return await helper.client.list(gvr, options)
            except APIError as exc:
                raise PerResourceQueryError(gvr, exc) from exc

        return await timed_query(
            recorder,
            gvr.resource,
            scope,
            lambda: timed_list_query(sink, outdir, gvr.resource + RESOURCE_FILE_EXTENSION, lister),
            timeout=config.query.timeout_seconds,
        )

    if config.query.max_concurrency <= 1:
        return [await _query(gvr) for gvr in resources]

    semaphore = asyncio.Semaphore(config.query.max_concurrency)

    async def _bounded(gvr: GroupVersionResource) -> QueryRecord:
        async with semaphore:
            return await _query(gvr)

    return list(await asyncio.gather(*(_bounded(gvr) for gvr in resources)))
