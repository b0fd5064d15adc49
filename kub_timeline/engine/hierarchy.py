"""Resource hierarchy builder.

Groups a flat event batch into per-resource lanes and nests each lane under
its parent so a Deployment shows its ReplicaSets and Pods underneath it.

Parent resolution uses three signals with a fixed precedence:

1. Owner references carried on the events (Deployment -> ReplicaSet -> Pod)
2. Topology edges (Service -> Deployment, Service <- Ingress, ...)
3. App-label grouping (display-only, merges top-level lanes)

A lane whose parent cannot be resolved by any signal stays top-level.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from kub_timeline.engine.classifier import render_priority
from kub_timeline.models import (
    OwnerRef,
    ParentSource,
    ResourceLane,
    ResourceRef,
    TimelineEvent,
    Topology,
    TopologyEdge,
    app_label_of,
)

logger = logging.getLogger(__name__)

WORKLOAD_KINDS = frozenset(
    {
        "Deployment",
        "Rollout",
        "DaemonSet",
        "StatefulSet",
        "Service",
        "Job",
        "CronJob",
        "Workflow",
        "CronWorkflow",
        "Application",
        "Kustomization",
        "HelmRelease",
        "GitRepository",
        "OCIRepository",
        "HelmRepository",
    }
)

# Topology node ids use lower-case kinds
KIND_ALIASES = {
    "pod": "Pod",
    "service": "Service",
    "deployment": "Deployment",
    "replicaset": "ReplicaSet",
    "statefulset": "StatefulSet",
    "daemonset": "DaemonSet",
    "ingress": "Ingress",
    "configmap": "ConfigMap",
    "secret": "Secret",
    "job": "Job",
    "cronjob": "CronJob",
    "hpa": "HorizontalPodAutoscaler",
    "horizontalpodautoscaler": "HorizontalPodAutoscaler",
    "podgroup": "PodGroup",
    "rollout": "Rollout",
    "pvc": "PVC",
}

_CONTROLLERS = ("Deployment", "Rollout", "StatefulSet", "DaemonSet")

# child kind -> parent kinds a topology edge may attach it to, most preferred first
PLAUSIBLE_PARENTS: dict[str, tuple[str, ...]] = {
    "Pod": ("ReplicaSet", "StatefulSet", "DaemonSet", "Job", "Service"),
    "PodGroup": ("Service",),
    "ReplicaSet": ("Deployment", "Rollout"),
    "Deployment": ("Service",),
    "Rollout": ("Service",),
    "StatefulSet": ("Service",),
    "DaemonSet": ("Service",),
    "Job": ("CronJob",),
    "Ingress": ("Service",),
    "ConfigMap": (*_CONTROLLERS, "Job", "CronJob"),
    "Secret": (*_CONTROLLERS, "Job", "CronJob"),
    "PVC": ("StatefulSet", "Deployment"),
    "HorizontalPodAutoscaler": _CONTROLLERS,
}

APP_GROUP_KINDS = frozenset(
    {
        "Service",
        "Deployment",
        "Rollout",
        "StatefulSet",
        "DaemonSet",
        "Job",
        "CronJob",
        "Ingress",
        "ConfigMap",
        "Secret",
        "Workflow",
        "CronWorkflow",
    }
)

APP_GROUP_KIND = "App"

CHILD_KIND_ORDER = {
    "Service": 1,
    "Ingress": 2,
    "Deployment": 2,
    "Rollout": 2,
    "StatefulSet": 2,
    "DaemonSet": 2,
    "ReplicaSet": 3,
    "Pod": 4,
    "ConfigMap": 5,
    "Secret": 5,
}


def is_workload_kind(kind: str) -> bool:
    return kind in WORKLOAD_KINDS


def node_id_to_ref(node_id: str) -> ResourceRef | None:
    """Convert a topology node id ("pod/default/web-1") into a ResourceRef."""
    parts = node_id.split("/")
    if len(parts) < 3:
        return None
    kind = KIND_ALIASES.get(parts[0], parts[0])
    return ResourceRef(kind, parts[1], "/".join(parts[2:]))


def build_hierarchy(
    events: list[TimelineEvent],
    topology: Topology | None = None,
    group_by_app: bool = False,
    root: ResourceRef | None = None,
) -> list[ResourceLane]:
    """Build the top-level lane forest for an event batch.

    Args:
        events: Flat event batch in any order.
        topology: Optional relationship graph, used only when owner
            references don't resolve a parent.
        group_by_app: Merge top-level lanes that share an app label under a
            synthetic lane.
        root: If set, return only the tree containing this resource.
    """
    lanes = _partition(events)

    parents: dict[ResourceRef, ResourceRef] = {}
    sources: dict[ResourceRef, ParentSource] = {}

    # --- Signal 1: owner references ---
    for ref, lane in lanes.items():
        owner_ref = _consistent_owner(lane)
        if owner_ref is None:
            continue
        parent = ResourceRef(owner_ref.kind, ref.namespace, owner_ref.name)
        if parent in lanes and parent != ref:
            parents[ref] = parent
            sources[ref] = ParentSource.OWNER
        else:
            logger.debug("owner %s of %s not in batch", parent, ref)

    # --- Signal 2: topology edges ---
    if topology and topology.edges:
        for child, parent in _topology_parents(lanes, topology.edges).items():
            if child not in parents:
                parents[child] = parent
                sources[child] = ParentSource.TOPOLOGY

    _break_cycles(parents)

    for ref, lane in lanes.items():
        lane.parent_source = sources.get(ref)

    forest = _assemble(lanes, parents)

    # --- Signal 3: app-label grouping ---
    if group_by_app:
        forest = _group_by_app(forest, lanes, topology)

    for lane in forest:
        _finalize(lane)

    if root is not None:
        return _select_root(forest, root)
    return forest


def flatten_lanes(lanes: list[ResourceLane]) -> list[ResourceLane]:
    """Every lane in the forest, depth-first, parents before children."""
    flat: list[ResourceLane] = []
    for lane in lanes:
        flat.append(lane)
        flat.extend(lane.descendants())
    return flat


def count_events(lanes: list[ResourceLane]) -> int:
    """Distinct events across a forest."""
    return len({e.id for lane in lanes for e in lane.all_events_sorted})


# ---------------------------------------------------------------------------
# Partition
# ---------------------------------------------------------------------------


def _new_lane(ref: ResourceRef) -> ResourceLane:
    return ResourceLane(
        id=str(ref),
        kind=ref.kind,
        namespace=ref.namespace,
        name=ref.name,
        is_workload=is_workload_kind(ref.kind),
    )


def _partition(events: list[TimelineEvent]) -> dict[ResourceRef, ResourceLane]:
    lanes: dict[ResourceRef, ResourceLane] = {}
    for event in events:
        # core/v1 Event objects belong on the lane of the object they describe
        if event.kind == "Event" and event.owner is not None:
            ref = ResourceRef(event.owner.kind, event.namespace, event.owner.name)
        else:
            ref = event.ref
        lane = lanes.get(ref)
        if lane is None:
            lane = lanes[ref] = _new_lane(ref)
        lane.events.append(event)

    for lane in lanes.values():
        lane.events.sort(key=lambda e: e.timestamp)
    return lanes


def _consistent_owner(lane: ResourceLane) -> OwnerRef | None:
    """The single owner named by the lane's own events, if they agree."""
    owners = {
        e.owner
        for e in lane.events
        if e.owner is not None and not (e.kind == "Event" and lane.kind != "Event")
    }
    if len(owners) == 1:
        return next(iter(owners))
    if owners:
        logger.debug("lane %s has conflicting owners %s", lane.id, sorted(map(str, owners)))
    return None


# ---------------------------------------------------------------------------
# Topology fallback
# ---------------------------------------------------------------------------


def _topology_parents(
    lanes: dict[ResourceRef, ResourceLane],
    edges: list[TopologyEdge],
) -> dict[ResourceRef, ResourceRef]:
    """Pick a parent for each lane from topology edges touching it."""
    visible_kinds = {ref.kind for ref in lanes}
    seen: set[tuple[str, str]] = set()
    # child -> (preference rank, edge index, parent)
    best: dict[ResourceRef, tuple[int, int, ResourceRef]] = {}

    for index, edge in enumerate(edges):
        key = (edge.source, edge.target)
        if key in seen:
            continue
        seen.add(key)

        # Shortcut edges are hidden when the intermediate kind is on screen
        if edge.skip_if_kind_visible and edge.skip_if_kind_visible in visible_kinds:
            continue

        source = node_id_to_ref(edge.source)
        target = node_id_to_ref(edge.target)
        if source is None or target is None or source == target:
            continue
        if source not in lanes or target not in lanes:
            continue

        for child, parent in ((source, target), (target, source)):
            preferred = PLAUSIBLE_PARENTS.get(child.kind, ())
            if parent.kind not in preferred:
                continue
            candidate = (preferred.index(parent.kind), index, parent)
            current = best.get(child)
            if current is None or candidate[:2] < current[:2]:
                best[child] = candidate

    return {child: parent for child, (_, _, parent) in best.items()}


def _break_cycles(parents: dict[ResourceRef, ResourceRef]) -> None:
    """Drop the parent link that closes any ownership cycle."""
    for start in list(parents):
        visited: set[ResourceRef] = set()
        ref = start
        while ref in parents:
            if ref in visited:
                logger.debug("ownership cycle through %s, detaching", ref)
                del parents[ref]
                break
            visited.add(ref)
            ref = parents[ref]


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------


def _assemble(
    lanes: dict[ResourceRef, ResourceLane],
    parents: dict[ResourceRef, ResourceRef],
) -> list[ResourceLane]:
    forest: list[ResourceLane] = []
    for ref, lane in lanes.items():
        parent = parents.get(ref)
        if parent is None:
            forest.append(lane)
        else:
            lanes[parent].children.append(lane)
    return forest


def _label_index(
    lanes: dict[ResourceRef, ResourceLane], topology: Topology | None
) -> dict[ResourceRef, str]:
    labels: dict[ResourceRef, str] = {}
    if topology:
        for node in topology.nodes:
            ref = node_id_to_ref(node.id)
            app = app_label_of(node.labels)
            if ref is not None and app:
                labels[ref] = app
    # Event labels are fresher than the topology snapshot
    for ref, lane in lanes.items():
        for event in reversed(lane.events):
            if event.app_label:
                labels[ref] = event.app_label
                break
    return labels


def _group_by_app(
    forest: list[ResourceLane],
    lanes: dict[ResourceRef, ResourceLane],
    topology: Topology | None,
) -> list[ResourceLane]:
    labels = _label_index(lanes, topology)

    groups: dict[tuple[str, str], list[ResourceLane]] = defaultdict(list)
    for lane in forest:
        if lane.kind not in APP_GROUP_KINDS:
            continue
        app = labels.get(lane.ref)
        if app:
            groups[(lane.namespace, app)].append(lane)

    merged: dict[str, ResourceLane] = {}
    grouped: list[ResourceLane] = []
    for (namespace, app), members in groups.items():
        if len(members) < 2:
            continue
        group_ref = ResourceRef(APP_GROUP_KIND, namespace, app)
        if group_ref in lanes:
            # A real resource already owns this id; keep lanes as they are
            continue
        group = _new_lane(group_ref)
        group.synthetic = True
        group.app_label = app
        for member in members:
            member.parent_source = ParentSource.APP_LABEL
            member.app_label = app
            group.children.append(member)
            merged[member.id] = group
        grouped.append(group)

    result: list[ResourceLane] = []
    placed: set[str] = set()
    for lane in forest:
        group = merged.get(lane.id)
        if group is None:
            result.append(lane)
        elif group.id not in placed:
            result.append(group)
            placed.add(group.id)
    return result


def _latest_activity(lane: ResourceLane) -> float:
    if not lane.events:
        return 0.0
    return lane.events[-1].timestamp.timestamp()


def _finalize(lane: ResourceLane) -> list[TimelineEvent]:
    """Order children and compute all_events_sorted bottom-up."""
    collected: dict[str, TimelineEvent] = {e.id: e for e in lane.events}
    for child in lane.children:
        for event in _finalize(child):
            collected.setdefault(event.id, event)

    lane.children.sort(
        key=lambda c: (CHILD_KIND_ORDER.get(c.kind, 10), -_latest_activity(c))
    )
    lane.all_events_sorted = sorted(
        collected.values(), key=lambda e: (e.timestamp, render_priority(e))
    )
    return lane.all_events_sorted


def _select_root(forest: list[ResourceLane], root: ResourceRef) -> list[ResourceLane]:
    root_id = str(root)
    for lane in forest:
        if lane.id == root_id or any(d.id == root_id for d in lane.descendants()):
            return [lane]
    # Unknown resource: a placeholder keeps the detail view populated
    return [_new_lane(root)]
