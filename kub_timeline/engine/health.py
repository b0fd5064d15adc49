"""Health span reconstruction.

Turns a lane's change events into contiguous intervals of constant health
covering the visible window, so the renderer can paint a background bar.
"""

from __future__ import annotations

from datetime import datetime

from kub_timeline.engine.classifier import is_problematic
from kub_timeline.models import (
    EventCategory,
    HealthSpan,
    HealthSpanResult,
    HealthState,
    Operation,
    TimelineEvent,
)

ROLLOUT_KINDS = frozenset({"Deployment", "StatefulSet", "DaemonSet", "Rollout", "ReplicaSet"})

# Diff summary fragments that indicate a rollout in progress
ROLLOUT_SIGNALS = ("updated:", "image(", "image:", "template")


def is_rollout_event(event: TimelineEvent) -> bool:
    if event.kind not in ROLLOUT_KINDS or not event.diff_summary:
        return False
    summary = event.diff_summary.lower()
    return any(signal in summary for signal in ROLLOUT_SIGNALS)


def implied_health(event: TimelineEvent) -> HealthState:
    """The health an event implies for its resource."""
    if event.operation == Operation.DELETE:
        return HealthState.UNKNOWN
    health = event.health_state
    if health is None:
        health = HealthState.UNHEALTHY if is_problematic(event) else HealthState.HEALTHY
    if health == HealthState.DEGRADED and is_rollout_event(event):
        return HealthState.ROLLING
    return health


def build_health_spans(
    change_events: list[TimelineEvent],
    window_start: datetime,
    now: datetime,
    all_events_for_metadata: list[TimelineEvent] | None = None,
) -> HealthSpanResult:
    """Build health spans for one lane over [window_start, now].

    Args:
        change_events: The lane's events; only change events are used.
        window_start: Left edge of the visible window.
        now: Right edge; the last span closes here.
        all_events_for_metadata: Events searched for the resource's
            creation time (defaults to ``change_events``).

    Returns:
        A HealthSpanResult. ``spans`` is empty when no change event at or
        before ``now`` exists, otherwise it exactly covers the window.
    """
    metadata_events = all_events_for_metadata if all_events_for_metadata is not None else change_events
    created_at = _created_at(metadata_events)
    created_before_window = created_at is not None and created_at < window_start

    if window_start >= now:
        return HealthSpanResult(created_at=created_at, created_before_window=created_before_window)

    ordered = sorted(
        (
            e
            for e in change_events
            if e.category == EventCategory.CHANGE and e.timestamp <= now
        ),
        key=lambda e: e.timestamp,
    )
    if not ordered:
        return HealthSpanResult(created_at=created_at, created_before_window=created_before_window)

    current = HealthState.UNKNOWN
    span_start = window_start
    spans: list[HealthSpan] = []

    for event in ordered:
        health = implied_health(event)
        if event.timestamp <= window_start:
            # Carried in from before the window; clipped at the left edge
            current = health
            continue
        if health == current:
            continue
        if event.timestamp == span_start:
            # Same instant as the previous transition: last one wins
            current = health
            if spans and spans[-1].health == health:
                span_start = spans.pop().start
            continue
        spans.append(HealthSpan(span_start, event.timestamp, current))
        span_start = event.timestamp
        current = health

    if span_start < now:
        spans.append(HealthSpan(span_start, now, current))

    if created_before_window:
        first = spans[0]
        spans[0] = HealthSpan(first.start, first.end, first.health, created_before=created_at)

    return HealthSpanResult(
        spans=spans,
        created_at=created_at,
        created_before_window=created_before_window,
    )


def _created_at(events: list[TimelineEvent]) -> datetime | None:
    stamped = [e for e in events if e.created_at is not None]
    if not stamped:
        return None
    return min(stamped, key=lambda e: e.timestamp).created_at
