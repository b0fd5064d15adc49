"""CLI entry point for kub-timeline.

Usage:
    kub-timeline show events.json [--topology topo.json] [--zoom 1h] [--pan N]
    kub-timeline live [--namespace NS] [--context CTX] [--watch SECONDS]
    kub-timeline status
    kub-timeline init
"""

from __future__ import annotations

import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn

from kub_timeline import __version__
from kub_timeline.collector.events import events_from_snapshot
from kub_timeline.collector.loader import (
    TimelineInputError,
    load_events,
    load_topology,
    parse_timestamp,
)
from kub_timeline.collector.snapshot import collect_snapshot
from kub_timeline.collector.topology import build_topology
from kub_timeline.config import Config, ConfigError
from kub_timeline.engine.ranking import LaneOrder
from kub_timeline.engine.selection import SelectionState
from kub_timeline.engine.timeline import build_timeline_view, events_for_resource
from kub_timeline.engine.viewport import PRESETS, Viewport
from kub_timeline.k8s_client import K8sClient
from kub_timeline.models import ResourceRef, TimelineEvent, Topology
from kub_timeline.output import (
    bar_width_for,
    render_event_detail,
    render_resource_events,
    render_timeline,
)

console = Console()


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _load_config(config_path: str) -> Config:
    try:
        return Config.load(config_path or None)
    except ConfigError as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        sys.exit(1)


def _apply_view_flags(
    cfg: Config,
    zoom: str | None,
    group_by_app: bool | None,
    show_routine: bool,
    search: str,
) -> None:
    """CLI flag overrides on top of file and env config."""
    if zoom:
        cfg.time_range_preset = zoom
    if group_by_app is not None:
        cfg.group_by_app = group_by_app
    if show_routine:
        cfg.show_routine = True
    if search:
        cfg.search = search


def _parse_resource(value: str) -> ResourceRef | None:
    if not value:
        return None
    try:
        return ResourceRef.parse(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--resource") from exc


def _render(
    cfg: Config,
    events: list[TimelineEvent],
    viewport: Viewport,
    order: LaneOrder,
    topology: Topology | None,
    title: str,
    show_scores: bool,
    root: ResourceRef | None = None,
) -> None:
    view = build_timeline_view(
        events,
        viewport,
        order,
        topology=topology,
        group_by_app=cfg.group_by_app,
        show_routine=cfg.show_routine,
        search=cfg.search,
        root=root,
    )
    render_timeline(view, console, title=title, width=cfg.width, show_scores=show_scores)


@click.group()
@click.version_option(version=__version__, prog_name="kub-timeline")
def main():
    """Swimlane timeline of Kubernetes resource events.

    Groups events into per-resource lanes nested by ownership, reconstructs
    health over time, and ranks lanes so the interesting ones come first.
    """
    pass


@main.command()
@click.argument("events_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--topology", "-t", "topology_file", default="", help="Topology JSON/YAML file")
@click.option("--zoom", "-z", type=click.Choice(list(PRESETS)), default=None, help="Visible time range")
@click.option("--fit", is_flag=True, help="Zoom out until the oldest event is visible")
@click.option("--pan", default=0, type=int, help="Pan back in time by N timeline columns")
@click.option("--group-by-app/--no-group-by-app", default=None, help="Merge lanes sharing an app label")
@click.option("--show-routine", is_flag=True, help="Include routine heartbeat/lease events")
@click.option("--search", "-s", default="", help="Only events matching this text")
@click.option("--now", "now_value", default="", help="Reference time (ISO-8601); default: current time")
@click.option("--resource", "-r", default="", help="Drill into Kind/namespace/name")
@click.option("--event", "-e", "event_id", default="", help="Show details for an event id")
@click.option("--scores", is_flag=True, help="Show lane score breakdowns")
@click.option("--config", "config_path", default="", help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def show(
    events_file: str,
    topology_file: str,
    zoom: str | None,
    fit: bool,
    pan: int,
    group_by_app: bool | None,
    show_routine: bool,
    search: str,
    now_value: str,
    resource: str,
    event_id: str,
    scores: bool,
    config_path: str,
    verbose: bool,
):
    """Render the timeline for an exported event batch."""
    _setup_logging(verbose)
    cfg = _load_config(config_path)
    _apply_view_flags(cfg, zoom, group_by_app, show_routine, search)
    root = _parse_resource(resource)

    now = datetime.now(timezone.utc)
    if now_value:
        parsed = parse_timestamp(now_value)
        if parsed is None:
            raise click.BadParameter(f"not an ISO-8601 time: {now_value!r}", param_hint="--now")
        now = parsed

    try:
        events = load_events(events_file)
        topology = load_topology(topology_file) if topology_file else None
    except TimelineInputError as exc:
        console.print(f"[bold red]Cannot load timeline input:[/bold red] {exc}")
        sys.exit(1)

    viewport = Viewport.from_preset(cfg.time_range_preset, now)
    if fit:
        viewport.fit_zoom(events)
    if pan:
        viewport.pan(pan, bar_width_for(cfg.width or console.width, scores))

    _render(
        cfg,
        events,
        viewport,
        LaneOrder(frozenset(cfg.system_namespaces)),
        topology,
        title=Path(events_file).name,
        show_scores=scores,
        root=root,
    )

    if root is not None:
        render_resource_events(events_for_resource(events, root), console, str(root))

    if event_id:
        selection = SelectionState()
        by_id = {e.id: e for e in events}
        if event_id in by_id:
            selection.select(by_id[event_id])
        selected = selection.selected_in(events)
        if selected is None:
            console.print(f"[yellow]No event with id {event_id!r} in this batch.[/yellow]")
        else:
            render_event_detail(selected, console)


@main.command()
@click.option("--namespace", "-n", default="", help="Limit to a specific namespace (default: all)")
@click.option("--context", "-c", default="", help="Kubernetes context to use")
@click.option("--kubeconfig", "-k", default="", help="Path to kubeconfig file")
@click.option("--zoom", "-z", type=click.Choice(list(PRESETS)), default=None, help="Visible time range")
@click.option("--group-by-app/--no-group-by-app", default=None, help="Merge lanes sharing an app label")
@click.option("--show-routine", is_flag=True, help="Include routine heartbeat/lease events")
@click.option("--search", "-s", default="", help="Only events matching this text")
@click.option("--no-topology", is_flag=True, help="Nest lanes by owner references only")
@click.option(
    "--watch",
    "-w",
    default=0,
    type=int,
    help="Re-collect and re-anchor the window on now every N seconds (Ctrl-C to stop)",
)
@click.option("--scores", is_flag=True, help="Show lane score breakdowns")
@click.option("--config", "config_path", default="", help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def live(
    namespace: str,
    context: str,
    kubeconfig: str,
    zoom: str | None,
    group_by_app: bool | None,
    show_routine: bool,
    search: str,
    no_topology: bool,
    watch: int,
    scores: bool,
    config_path: str,
    verbose: bool,
):
    """Collect events from a cluster and render the timeline."""
    _setup_logging(verbose)
    cfg = _load_config(config_path)
    if namespace:
        cfg.namespace = namespace
    if context:
        cfg.context = context
    if kubeconfig:
        cfg.kubeconfig = kubeconfig
    _apply_view_flags(cfg, zoom, group_by_app, show_routine, search)

    console.print("[bold]Connecting to Kubernetes cluster...[/bold]")
    k8s = K8sClient(kubeconfig=cfg.kubeconfig or None, context=cfg.context or None)
    try:
        k8s.connect()
    except Exception as exc:
        console.print(f"[bold red]Failed to connect to cluster:[/bold red] {exc}")
        console.print(
            "\n[dim]Make sure your kubeconfig is valid and the cluster is reachable.\n"
            "You can specify a context with --context or a kubeconfig with --kubeconfig.[/dim]"
        )
        sys.exit(1)

    cluster_name = k8s.get_cluster_name()
    title = f"{cluster_name} ({cfg.namespace or 'all namespaces'})"
    viewport = Viewport.from_preset(cfg.time_range_preset, datetime.now(timezone.utc))
    order = LaneOrder(frozenset(cfg.system_namespaces))

    while True:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            console=console,
            transient=True,
        ) as progress:
            snap = collect_snapshot(k8s, namespace=cfg.namespace or None, progress=progress)

        events = events_from_snapshot(snap)
        topology = None if no_topology else build_topology(snap)
        # Each collection, including every --watch tick, is a user-requested refresh
        viewport.refresh(snap.timestamp)

        if watch:
            console.clear()
        _render(cfg, events, viewport, order, topology, title=title, show_scores=scores)

        if not watch:
            break
        try:
            time.sleep(watch)
        except KeyboardInterrupt:
            break


@main.command()
@click.option("--context", "-c", default="", help="Kubernetes context to use")
@click.option("--kubeconfig", "-k", default="", help="Path to kubeconfig file")
def status(context: str, kubeconfig: str):
    """Quick cluster connectivity check and recent event volume."""
    k8s = K8sClient(kubeconfig=kubeconfig or None, context=context or None)

    try:
        k8s.connect()
    except Exception as exc:
        console.print(f"[bold red]Cannot connect to cluster:[/bold red] {exc}")
        sys.exit(1)

    console.print(f"[green]Cluster:[/green] {k8s.get_cluster_name()}")
    console.print(f"[green]Context:[/green] {k8s.get_context_name()}")

    try:
        pods = k8s.core_v1.list_pod_for_all_namespaces()
        events = k8s.core_v1.list_event_for_all_namespaces()
        warnings = sum(1 for e in events.items if e.type == "Warning")

        console.print(f"[green]Pods:[/green] {len(pods.items)}")
        console.print(f"[green]Events:[/green] {len(events.items)} ({warnings} warnings)")
    except Exception as exc:
        console.print(f"[yellow]Could not fetch cluster stats:[/yellow] {exc}")


SAMPLE_CONFIG = """\
# kub-timeline configuration
# Place this file at .kub-timeline.yaml in your project or home directory.
# Every key can also be set with a KUB_TIMELINE_<KEY> environment variable.

# Kubernetes connection (live command)
# kubeconfig: ~/.kube/config
# context: my-cluster
# namespace: ""  # empty = all namespaces

# View
time_range_preset: 1h  # 15m, 30m, 1h, 2h, 4h, 8h, 12h, 1d, 2d, 3d, 7d
group_by_app: false
show_routine: false
# search: ""
# width: 0  # 0 = terminal width

# Lanes in these namespaces rank lower
system_namespaces:
  - kube-system
  - kube-public
  - kube-node-lease
  - gke-managed-system
"""


@main.command()
def init():
    """Generate a sample configuration file."""
    out_path = Path.cwd() / ".kub-timeline.yaml"
    if out_path.exists():
        console.print(f"[yellow]Config file already exists:[/yellow] {out_path}")
        return

    out_path.write_text(SAMPLE_CONFIG)
    console.print(f"[green]Created config file:[/green] {out_path}")
    console.print("[dim]Edit it to set your default time range and view options.[/dim]")


if __name__ == "__main__":
    main()
