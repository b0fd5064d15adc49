"""Turn a cluster snapshot into timeline events.

A one-shot snapshot has no change history, so events are reconstructed:
- core Events become platform notices as-is
- each resource gets an inferred creation event at its creationTimestamp
- resources with status get one change event carrying their current health,
  stamped at the latest condition transition
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from rich.progress import Progress

from kub_timeline.collector.payloads import (
    GenericPayload,
    JobPayload,
    PodPayload,
    WorkloadPayload,
    derive_health,
    last_transition,
    payload_from_object,
)
from kub_timeline.collector.snapshot import collect_snapshot
from kub_timeline.k8s_client import K8sClient
from kub_timeline.models import (
    ClusterSnapshot,
    EventCategory,
    HealthState,
    Operation,
    OwnerRef,
    TimelineEvent,
)

logger = logging.getLogger(__name__)


def _aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _owner_of(meta: Any) -> OwnerRef | None:
    """Controller owner reference, falling back to the first one."""
    refs = meta.owner_references or []
    for ref in refs:
        if ref.controller:
            return OwnerRef(ref.kind, ref.name)
    if refs:
        return OwnerRef(refs[0].kind, refs[0].name)
    return None


def _status_message(payload: Any) -> str:
    if isinstance(payload, PodPayload):
        msg = f"phase={payload.phase} ready={payload.ready}"
        if payload.restart_count:
            msg += f" restarts={payload.restart_count}"
        return msg
    if isinstance(payload, WorkloadPayload):
        return f"{payload.ready}/{payload.desired} ready, {payload.updated} updated"
    if isinstance(payload, JobPayload):
        return f"active={payload.active} succeeded={payload.succeeded} failed={payload.failed}"
    return ""


def notice_from_k8s_event(ev: Any) -> TimelineEvent | None:
    """Convert a core/v1 Event into a platform notice."""
    involved = ev.involved_object
    if involved is None or not involved.kind or not involved.name:
        return None

    timestamp = _aware(ev.last_timestamp or ev.event_time or ev.metadata.creation_timestamp)
    if timestamp is None:
        logger.debug("skipping Event %s without a timestamp", ev.metadata.name)
        return None

    return TimelineEvent(
        id=ev.metadata.uid or f"{ev.metadata.namespace}/{ev.metadata.name}",
        kind=involved.kind,
        namespace=involved.namespace or ev.metadata.namespace or "",
        name=involved.name,
        timestamp=timestamp,
        category=EventCategory.PLATFORM_NOTICE,
        event_type=ev.type or "",
        reason=ev.reason or "",
        message=ev.message or "",
        count=ev.count or 1,
    )


def events_for_object(kind: str, obj: Any) -> list[TimelineEvent]:
    """Inferred creation event plus current-health change event for one object."""
    meta = obj.metadata
    created = _aware(meta.creation_timestamp)
    if created is None:
        return []

    uid = meta.uid or f"{kind}/{meta.namespace}/{meta.name}"
    owner = _owner_of(meta)
    labels = dict(meta.labels or {})
    namespace = meta.namespace or ""

    events = [
        TimelineEvent(
            id=f"{uid}:created",
            kind=kind,
            namespace=namespace,
            name=meta.name,
            timestamp=created,
            category=EventCategory.INFERRED,
            operation=Operation.ADD,
            reason="Created",
            owner=owner,
            created_at=created,
            labels=labels,
        )
    ]

    payload = payload_from_object(kind, obj)
    if isinstance(payload, GenericPayload):
        return events

    health, reason = derive_health(payload)
    if health is HealthState.UNKNOWN:
        return events

    observed = last_transition(obj) or created
    events.append(
        TimelineEvent(
            id=f"{uid}:status",
            kind=kind,
            namespace=namespace,
            name=meta.name,
            timestamp=max(observed, created),
            category=EventCategory.CHANGE,
            operation=Operation.UPDATE,
            reason=reason,
            message=_status_message(payload),
            health_state=health,
            owner=owner,
            created_at=created,
            labels=labels,
        )
    )
    return events


def events_from_snapshot(snap: ClusterSnapshot) -> list[TimelineEvent]:
    """All timeline events reconstructable from a snapshot, oldest first."""
    events: list[TimelineEvent] = []

    for kind, obj in snap.resources():
        events.extend(events_for_object(kind, obj))

    for ev in snap.events:
        notice = notice_from_k8s_event(ev)
        if notice is not None:
            events.append(notice)

    events.sort(key=lambda e: e.timestamp)
    return events


def collect_timeline_events(
    k8s: K8sClient,
    namespace: str | None = None,
    progress: Progress | None = None,
) -> list[TimelineEvent]:
    """Collect a snapshot from the cluster and reconstruct its events."""
    return events_from_snapshot(collect_snapshot(k8s, namespace=namespace, progress=progress))
