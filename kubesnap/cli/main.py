"""Click commands: ``kubesnap collect`` and ``kubesnap resources``."""

from __future__ import annotations

import asyncio
import dataclasses
import sys

import click

from kubesnap.app import RunResult, connect, run_snapshot
from kubesnap.collector.selector import select_resources
from kubesnap.config import load_config, validate_namespace_regex
from kubesnap.dynamic.client import DiscoveryClient
from kubesnap.errors import KubeSnapError
from kubesnap.models.config import KubeSnapConfig
from kubesnap.models.resources import GroupVersionResource
from kubesnap.observability.logging import setup_logging


def _apply_overrides(config: KubeSnapConfig, **overrides: object) -> KubeSnapConfig:
    """Return *config* with every non-None CLI value applied.

    Raises:
        ValueError: if the namespace pattern does not compile.
    """
    filters = config.filters
    if overrides.get("namespaces") is not None:
        filters = dataclasses.replace(filters, namespaces=validate_namespace_regex(str(overrides["namespaces"])))
    if overrides.get("label_selector") is not None:
        filters = dataclasses.replace(filters, label_selector=str(overrides["label_selector"]))
    resources = overrides.get("resources")
    if resources:
        filters = dataclasses.replace(filters, resources=tuple(resources))  # type: ignore[arg-type]
    config.filters = filters

    if overrides.get("output_dir") is not None:
        config.output_dir = str(overrides["output_dir"])
    if overrides.get("max_concurrency") is not None:
        config.query.max_concurrency = int(overrides["max_concurrency"])  # type: ignore[call-overload]
    if overrides.get("query_timeout") is not None:
        config.query.timeout_seconds = float(overrides["query_timeout"])  # type: ignore[arg-type]
    if overrides.get("host_data") is not None:
        config.host_data.enabled = bool(overrides["host_data"])
    if overrides.get("pod_logs") is not None:
        config.pod_logs.enabled = bool(overrides["pod_logs"])
    if overrides.get("kubeconfig") is not None:
        config.cluster.kubeconfig = str(overrides["kubeconfig"])
    if overrides.get("context") is not None:
        config.cluster.context = str(overrides["context"])
    if overrides.get("log_level") is not None:
        config.log.level = str(overrides["log_level"])
    return config


def _load(**overrides: object) -> KubeSnapConfig:
    try:
        config = _apply_overrides(load_config(), **overrides)
    except ValueError as exc:
        raise click.UsageError(str(exc)) from exc
    config.log.console = sys.stderr.isatty()
    setup_logging(config.log.level, console=config.log.console)
    return config


@click.group()
@click.version_option(package_name="kubesnap")
def cli() -> None:
    """Snapshot every listable resource a cluster's API server exposes."""


_cluster_options = [
    click.option("--kubeconfig", type=click.Path(dir_okay=False), default=None, help="Path to a kubeconfig file."),
    click.option("--context", default=None, help="Kubeconfig context to use."),
    click.option(
        "--log-level",
        type=click.Choice(["debug", "info", "warning", "error"]),
        default=None,
        help="Log verbosity.",
    ),
]


def cluster_options(fn):  # type: ignore[no-untyped-def]
    for option in reversed(_cluster_options):
        fn = option(fn)
    return fn


@cli.command()
@click.option("--output-dir", "-o", type=click.Path(file_okay=False), default=None, help="Snapshot directory.")
@click.option("--namespaces", default=None, help="Regex; namespaces whose names fully match are collected.")
@click.option("--label-selector", "-l", default=None, help="Label selector passed to every list call.")
@click.option("--resource", "resources", multiple=True, help="Only collect this plural resource name (repeatable).")
@click.option("--max-concurrency", type=click.IntRange(1, 32), default=None, help="In-flight queries per pass.")
@click.option("--query-timeout", type=click.FloatRange(min=0), default=None, help="Seconds per query; 0 disables.")
@click.option("--host-data/--no-host-data", default=None, help="Gather node configz/healthz.")
@click.option("--pod-logs/--no-pod-logs", default=None, help="Gather container logs.")
@cluster_options
def collect(**options: object) -> None:
    """Run a full collection and write the snapshot."""
    config = _load(**options)
    try:
        result = asyncio.run(run_snapshot(config))
    except KubeSnapError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    _print_summary(result)
    if not result.ok:
        sys.exit(1)


@cli.command()
@click.option("--namespaced/--cluster", default=True, help="Which scope to select for.")
@click.option("--resource", "resources", multiple=True, help="Only consider this plural resource name.")
@cluster_options
def resources(namespaced: bool, **options: object) -> None:
    """Print the resources a pass would collect, without listing them."""
    config = _load(**options)
    try:
        selected = asyncio.run(_select(config, namespaced))
    except KubeSnapError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    for gvr in selected:
        group = gvr.group or "core"
        click.echo(f"{group}/{gvr.version}\t{gvr.resource}")


async def _select(config: KubeSnapConfig, namespaced: bool) -> list[GroupVersionResource]:
    rest = await connect(config)
    try:
        return await select_resources(DiscoveryClient(rest), "" if namespaced else None, config.filters)
    finally:
        await rest.close()


def _print_summary(result: RunResult) -> None:
    click.echo(f"Snapshot written to {result.output_dir}")
    click.echo(f"  queries: {len(result.records)}  failed: {len(result.failed_queries)}")
    for record in result.failed_queries:
        scope = record.namespace or "<cluster>"
        click.echo(f"  - {record.name} [{scope}] {record.outcome.value}: {record.error}")
    for scope in result.failed_passes:
        click.echo(f"  ! pass aborted: {scope}")
