"""Timeline view composer.

Filters the raw event batch, then runs hierarchy, ranking, viewport and
health-span derivation in order to produce one display-ready TimelineView.
Everything here is a pure function of its inputs except the LaneOrder and
Viewport objects, which the caller owns.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from kub_timeline.engine.classifier import is_problematic, is_routine
from kub_timeline.engine.health import build_health_spans
from kub_timeline.engine.hierarchy import build_hierarchy, flatten_lanes
from kub_timeline.engine.ranking import LaneOrder
from kub_timeline.engine.viewport import Viewport, ViewportSnapshot, visible_lanes
from kub_timeline.models import (
    HealthSpanResult,
    ResourceLane,
    ResourceRef,
    TimeWindow,
    TimelineEvent,
    Topology,
)


@dataclass
class TimelineView:
    """Everything the renderer needs for one frame."""

    lanes: list[ResourceLane] = field(default_factory=list)  # ranked, visible, top-level
    spans: dict[str, HealthSpanResult] = field(default_factory=dict)  # lane id -> spans
    viewport: ViewportSnapshot | None = None
    routine_count: int = 0
    total_events: int = 0
    hidden_lane_count: int = 0  # lanes with no activity in the window
    problem_count: int = 0  # problematic events on rendered lanes, inside the window

    @property
    def is_empty(self) -> bool:
        return not self.lanes


def filter_events(events: list[TimelineEvent], search: str = "") -> list[TimelineEvent]:
    """Case-insensitive match on name, kind, namespace, reason or message."""
    if not search:
        return list(events)
    term = search.lower()
    return [
        e
        for e in events
        if term in e.name.lower()
        or term in e.kind.lower()
        or term in e.namespace.lower()
        or term in e.reason.lower()
        or term in e.message.lower()
    ]


def split_routine(events: list[TimelineEvent]) -> tuple[list[TimelineEvent], list[TimelineEvent]]:
    """Partition events into (interesting, routine)."""
    kept: list[TimelineEvent] = []
    routine: list[TimelineEvent] = []
    for event in events:
        (routine if is_routine(event) else kept).append(event)
    return kept, routine


def events_for_resource(events: list[TimelineEvent], ref: ResourceRef) -> list[TimelineEvent]:
    """Filter a batch to events involving a specific resource."""
    return sorted((e for e in events if e.ref == ref), key=lambda e: e.timestamp)


def problem_events_in_window(events: list[TimelineEvent], window: TimeWindow) -> list[TimelineEvent]:
    """All problematic events within a time window, oldest first."""
    return sorted(
        (e for e in events if is_problematic(e) and window.contains(e.timestamp)),
        key=lambda e: e.timestamp,
    )


def build_timeline_view(
    events: list[TimelineEvent],
    viewport: Viewport,
    order: LaneOrder,
    topology: Topology | None = None,
    group_by_app: bool = False,
    show_routine: bool = False,
    search: str = "",
    root: ResourceRef | None = None,
) -> TimelineView:
    """Derive the display model for the current batch, flags and viewport.

    ``root`` narrows the view to the tree containing one resource.
    """
    matched = filter_events(events, search)
    kept, routine = split_routine(matched)
    if show_routine:
        kept = matched

    lanes = build_hierarchy(kept, topology=topology, group_by_app=group_by_app, root=root)
    ranked = order.arrange(lanes, viewport.reference_now)

    snapshot = viewport.snapshot()
    shown = visible_lanes(ranked, snapshot.visible_window)

    spans: dict[str, HealthSpanResult] = {}
    for lane in flatten_lanes(shown):
        spans[lane.id] = build_health_spans(
            lane.events,
            snapshot.visible_window.start,
            viewport.reference_now,
            lane.events,
        )

    rendered = [e for lane in shown for e in lane.all_events_sorted]
    problems = problem_events_in_window(rendered, snapshot.visible_window)

    return TimelineView(
        lanes=shown,
        spans=spans,
        viewport=snapshot,
        routine_count=len(routine),
        total_events=len(kept),
        hidden_lane_count=len(ranked) - len(shown),
        problem_count=len(problems),
    )
