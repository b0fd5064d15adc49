"""Shared fixtures and helpers for kub-timeline tests.

Timeline events are built with ``make_event`` relative to a fixed NOW so
tests never depend on the wall clock. For the live collector we build
lightweight mock objects that replicate the attribute-access interface of
the kubernetes Python client objects.
"""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from kub_timeline.models import (
    ClusterSnapshot,
    EventCategory,
    HealthState,
    Operation,
    OwnerRef,
    TimelineEvent,
    Topology,
    TopologyEdge,
    TopologyNode,
)

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

_ids = itertools.count(1)


def ts(minutes: float = 0, seconds: float = 0) -> datetime:
    """A time relative to NOW. Negative values are in the past."""
    return NOW + timedelta(minutes=minutes, seconds=seconds)


# ---------------------------------------------------------------------------
# Timeline event factory
# ---------------------------------------------------------------------------


def make_event(
    kind: str = "Pod",
    name: str = "web-1",
    namespace: str = "default",
    at: datetime | None = None,
    operation: Operation | None = Operation.UPDATE,
    category: EventCategory = EventCategory.CHANGE,
    event_type: str = "",
    reason: str = "",
    message: str = "",
    health: HealthState | None = None,
    owner: tuple[str, str] | None = None,
    labels: dict[str, str] | None = None,
    created_at: datetime | None = None,
    diff_summary: str = "",
    event_id: str | None = None,
) -> TimelineEvent:
    return TimelineEvent(
        id=event_id or f"evt-{next(_ids)}",
        kind=kind,
        namespace=namespace,
        name=name,
        timestamp=at or NOW,
        category=category,
        operation=operation,
        event_type=event_type,
        reason=reason,
        message=message,
        health_state=health,
        owner=OwnerRef(*owner) if owner else None,
        diff_summary=diff_summary,
        created_at=created_at,
        labels=labels or {},
    )


def make_notice(
    kind: str = "Pod",
    name: str = "web-1",
    namespace: str = "default",
    at: datetime | None = None,
    event_type: str = "Warning",
    reason: str = "BackOff",
    message: str = "",
    owner: tuple[str, str] | None = None,
) -> TimelineEvent:
    """A platform notice (core/v1 Event) about a resource."""
    return make_event(
        kind=kind,
        name=name,
        namespace=namespace,
        at=at,
        operation=None,
        category=EventCategory.PLATFORM_NOTICE,
        event_type=event_type,
        reason=reason,
        message=message,
        owner=owner,
    )


# ---------------------------------------------------------------------------
# Topology factory
# ---------------------------------------------------------------------------


def make_topology(
    edges: list[tuple[str, ...]],
    node_labels: dict[str, dict[str, str]] | None = None,
) -> Topology:
    """Edges as (source, target[, type[, skip_if_kind_visible]]) node ids."""
    topology = Topology()
    node_ids: list[str] = []
    for edge in edges:
        source, target = edge[0], edge[1]
        topology.edges.append(
            TopologyEdge(
                source=source,
                target=target,
                type=edge[2] if len(edge) > 2 else "",
                skip_if_kind_visible=edge[3] if len(edge) > 3 else "",
            )
        )
        node_ids.extend(n for n in (source, target) if n not in node_ids)
    for node_id in list(node_labels or {}):
        if node_id not in node_ids:
            node_ids.append(node_id)
    for node_id in node_ids:
        kind, _, name = node_id.split("/", 2)
        topology.nodes.append(
            TopologyNode(id=node_id, kind=kind, name=name, labels=(node_labels or {}).get(node_id, {}))
        )
    return topology


# ---------------------------------------------------------------------------
# Generic attribute-bag that behaves like a K8s API object
# ---------------------------------------------------------------------------


class K8sObj:
    """Minimal mock for K8s API objects.  Supports nested attribute access."""

    def __init__(self, **kwargs: Any):
        for k, v in kwargs.items():
            if isinstance(v, dict):
                setattr(self, k, K8sObj(**v))
            else:
                setattr(self, k, v)

    def __getattr__(self, name: str) -> Any:
        # Return None for any attribute not set (mirrors K8s client behaviour)
        return None

    def __iter__(self):
        """Allow dict() conversion for label selectors."""
        d = {k: v for k, v in self.__dict__.items() if not k.startswith("_")}
        return iter(d.items())


def make_meta(
    name: str,
    namespace: str = "default",
    labels: dict | None = None,
    owner: tuple[str, str] | None = None,
    created: datetime | None = None,
    uid: str | None = None,
) -> K8sObj:
    owners = [K8sObj(kind=owner[0], name=owner[1], controller=True)] if owner else None
    meta = K8sObj(
        name=name,
        namespace=namespace,
        uid=uid or f"uid-{name}",
        owner_references=owners,
        creation_timestamp=created or ts(minutes=-30),
    )
    # Set labels as a plain dict since production code calls dict() on it
    meta.labels = labels if labels is not None else {"app": name}
    return meta


def condition(type_: str, status: str = "True", at: datetime | None = None) -> K8sObj:
    return K8sObj(type=type_, status=status, last_transition_time=at)


# ---------------------------------------------------------------------------
# Resource factories
# ---------------------------------------------------------------------------


def make_pod(
    name: str,
    namespace: str = "default",
    phase: str = "Running",
    ready: bool = True,
    waiting_reason: str | None = None,
    restart_count: int = 0,
    labels: dict | None = None,
    owner: tuple[str, str] | None = None,
    created: datetime | None = None,
    ready_at: datetime | None = None,
    volumes: list | None = None,
) -> K8sObj:
    state = K8sObj(waiting=K8sObj(reason=waiting_reason)) if waiting_reason else K8sObj(running=K8sObj())
    return K8sObj(
        metadata=make_meta(name, namespace, labels, owner, created),
        spec=K8sObj(
            containers=[K8sObj(name="main", env=[], env_from=[])],
            volumes=volumes or [],
        ),
        status=K8sObj(
            phase=phase,
            conditions=[condition("Ready", "True" if ready else "False", ready_at or ts(minutes=-20))],
            container_statuses=[K8sObj(name="main", restart_count=restart_count, state=state)],
        ),
    )


def make_deployment(
    name: str,
    namespace: str = "default",
    replicas: int = 3,
    ready_replicas: int | None = None,
    updated_replicas: int | None = None,
    template_labels: dict | None = None,
    created: datetime | None = None,
    progressed_at: datetime | None = None,
    volumes: list | None = None,
    containers: list | None = None,
) -> K8sObj:
    template = K8sObj(
        metadata=K8sObj(),
        spec=K8sObj(
            volumes=volumes or [],
            containers=containers or [K8sObj(name="main", env=[], env_from=[])],
        ),
    )
    template.metadata.labels = template_labels or {"app": name}
    return K8sObj(
        metadata=make_meta(name, namespace, created=created),
        spec=K8sObj(replicas=replicas, template=template),
        status=K8sObj(
            replicas=replicas,
            ready_replicas=ready_replicas if ready_replicas is not None else replicas,
            available_replicas=ready_replicas if ready_replicas is not None else replicas,
            updated_replicas=updated_replicas if updated_replicas is not None else replicas,
            conditions=[condition("Available", "True", progressed_at or ts(minutes=-25))],
        ),
    )


def make_replicaset(name: str, namespace: str = "default", owner_deployment: str | None = None) -> K8sObj:
    return K8sObj(
        metadata=make_meta(
            name,
            namespace,
            owner=("Deployment", owner_deployment) if owner_deployment else None,
        ),
        spec=K8sObj(replicas=1),
        status=K8sObj(replicas=1, ready_replicas=1, available_replicas=1, conditions=[]),
    )


def make_service(name: str, namespace: str = "default", selector: dict | None = None) -> K8sObj:
    svc = K8sObj(metadata=make_meta(name, namespace), spec=K8sObj())
    # Set selector as a plain dict (not a K8sObj) since production code calls dict() on it
    svc.spec.selector = selector if selector is not None else {"app": name}
    return svc


def make_ingress(name: str, service: str, namespace: str = "default") -> K8sObj:
    backend = K8sObj(service=K8sObj(name=service))
    return K8sObj(
        metadata=make_meta(name, namespace),
        spec=K8sObj(
            rules=[K8sObj(host="example.com", http=K8sObj(paths=[K8sObj(path="/", backend=backend)]))],
        ),
    )


def make_configmap(name: str, namespace: str = "default") -> K8sObj:
    return K8sObj(metadata=make_meta(name, namespace, labels={}))


def make_hpa(name: str, target_kind: str, target_name: str, namespace: str = "default") -> K8sObj:
    return K8sObj(
        metadata=make_meta(name, namespace),
        spec=K8sObj(scale_target_ref=K8sObj(kind=target_kind, name=target_name)),
    )


def make_job(name: str, namespace: str = "default", failed: bool = False) -> K8sObj:
    conditions = [condition("Failed" if failed else "Complete", "True", ts(minutes=-5))]
    return K8sObj(
        metadata=make_meta(name, namespace, owner=("CronJob", "nightly")),
        spec=K8sObj(template=K8sObj(spec=K8sObj(volumes=[], containers=[]))),
        status=K8sObj(active=0, succeeded=0 if failed else 1, failed=1 if failed else 0, conditions=conditions),
    )


def make_k8s_event(
    resource_kind: str,
    resource_name: str,
    resource_namespace: str = "default",
    event_type: str = "Warning",
    reason: str = "BackOff",
    message: str = "",
    count: int = 1,
    timestamp: datetime | None = None,
    uid: str | None = None,
) -> K8sObj:
    at = timestamp or ts(minutes=-2)
    return K8sObj(
        involved_object=K8sObj(
            kind=resource_kind,
            name=resource_name,
            namespace=resource_namespace,
        ),
        type=event_type,
        reason=reason,
        message=message,
        count=count,
        last_timestamp=at,
        event_time=None,
        metadata=K8sObj(
            name=f"{resource_name}.{reason.lower()}",
            namespace=resource_namespace,
            uid=uid,
            creation_timestamp=at,
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def empty_snapshot() -> ClusterSnapshot:
    return ClusterSnapshot(timestamp=NOW)
