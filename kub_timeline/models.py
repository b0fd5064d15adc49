"""Data models for the resource event timeline.

Core concepts:
- TimelineEvent: An immutable change or notice observed for one resource
- ResourceLane: A resource's event track, nested under its owner
- HealthSpan: An interval during which a resource's health was constant
- ScoreBreakdown: Why a lane ranks where it does
- Topology: Optional graph of resource relationships from an external source
- ClusterSnapshot: Raw API objects the live collector turns into events
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


class EventCategory(str, Enum):
    """Where an event came from."""

    CHANGE = "change"  # watch add/update/delete
    PLATFORM_NOTICE = "platform-notice"  # core/v1 Event (Normal/Warning)
    INFERRED = "inferred"  # reconstructed from resource metadata


class Operation(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


class HealthState(str, Enum):
    """Health of a resource at a point in time."""

    HEALTHY = "healthy"
    ROLLING = "rolling"  # expected degradation while a rollout progresses
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"

    @property
    def rich_style(self) -> str:
        return {
            HealthState.HEALTHY: "green",
            HealthState.ROLLING: "blue",
            HealthState.DEGRADED: "yellow",
            HealthState.UNHEALTHY: "red",
            HealthState.UNKNOWN: "grey50",
        }[self]


class ParentSource(str, Enum):
    """Which ownership signal attached a lane to its parent."""

    OWNER = "owner"
    TOPOLOGY = "topology"
    APP_LABEL = "app-label"


# ---------------------------------------------------------------------------
# Resource reference: the identity key of a lane
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResourceRef:
    """Unique identifier for a Kubernetes resource."""

    kind: str
    namespace: str
    name: str

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"

    @classmethod
    def parse(cls, text: str) -> ResourceRef:
        """Inverse of ``str()``: "Kind/ns/name" or "Kind/name" for cluster-scoped."""
        parts = text.strip().split("/")
        if len(parts) == 2 and all(parts):
            return cls(parts[0], "", parts[1])
        if len(parts) == 3 and parts[0] and parts[2]:
            return cls(parts[0], parts[1], parts[2])
        raise ValueError(f"expected Kind/namespace/name, got {text!r}")


@dataclass(frozen=True)
class OwnerRef:
    """Owner reference carried on an event. The owner shares the event's namespace."""

    kind: str
    name: str


# ---------------------------------------------------------------------------
# Timeline event
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimelineEvent:
    """A single observation about one resource."""

    id: str
    kind: str
    namespace: str
    name: str
    timestamp: datetime
    category: EventCategory = EventCategory.CHANGE
    operation: Operation | None = None
    event_type: str = ""  # "Normal" or "Warning" for platform notices
    reason: str = ""
    message: str = ""
    health_state: HealthState | None = None
    owner: OwnerRef | None = None
    diff_summary: str = ""
    created_at: datetime | None = None
    labels: dict[str, str] = field(default_factory=dict, compare=False, hash=False)
    count: int = 1

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(self.kind, self.namespace, self.name)

    @property
    def app_label(self) -> str:
        return app_label_of(self.labels)

    def __lt__(self, other: TimelineEvent) -> bool:
        return self.timestamp < other.timestamp


def app_label_of(labels: dict[str, Any] | None) -> str:
    """Return the app grouping label (app.kubernetes.io/name, else app)."""
    if not labels:
        return ""
    return str(labels.get("app.kubernetes.io/name") or labels.get("app") or "")


# ---------------------------------------------------------------------------
# Topology: externally supplied relationship graph
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TopologyNode:
    id: str  # "kind/namespace/name", lower-case kind
    kind: str
    name: str = ""
    labels: dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class TopologyEdge:
    source: str
    target: str
    type: str = ""  # exposes, routes-to, uses, configures, manages, scales
    skip_if_kind_visible: str = ""


@dataclass
class Topology:
    nodes: list[TopologyNode] = field(default_factory=list)
    edges: list[TopologyEdge] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScoreBreakdown:
    """Named contributions to a lane's interestingness score."""

    kind: int = 0
    recent_5m: int = 0
    recent_30m: int = 0
    problems: int = 0
    variety: int = 0
    add_delete: int = 0
    children: int = 0
    empty: int = 0
    system_ns: int = 0
    noisy: int = 0

    @property
    def total(self) -> int:
        return (
            self.kind
            + self.recent_5m
            + self.recent_30m
            + self.problems
            + self.variety
            + self.add_delete
            + self.children
            + self.empty
            + self.system_ns
            + self.noisy
        )

    @property
    def details(self) -> str:
        parts = [f"kind:{self.kind}"]
        for label, value in (
            ("5m", self.recent_5m),
            ("30m", self.recent_30m),
            ("warn", self.problems),
            ("var", self.variety),
            ("a/d", self.add_delete),
            ("child", self.children),
            ("empty", self.empty),
            ("sys", self.system_ns),
            ("noisy", self.noisy),
        ):
            if value:
                parts.append(f"{label}:{value}")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# Resource lane
# ---------------------------------------------------------------------------


@dataclass
class ResourceLane:
    """A resource's event track plus the lanes nested under it."""

    id: str
    kind: str
    namespace: str
    name: str
    is_workload: bool = False
    events: list[TimelineEvent] = field(default_factory=list)
    children: list[ResourceLane] = field(default_factory=list)
    all_events_sorted: list[TimelineEvent] = field(default_factory=list)
    score: int = 0
    score_breakdown: ScoreBreakdown | None = None
    parent_source: ParentSource | None = None
    synthetic: bool = False  # app-label group, not a real resource
    app_label: str = ""

    @property
    def ref(self) -> ResourceRef:
        return ResourceRef(self.kind, self.namespace, self.name)

    @property
    def child_event_count(self) -> int:
        return len(self.all_events_sorted) - len(self.events)

    def descendants(self) -> list[ResourceLane]:
        """All lanes below this one, depth-first."""
        found: list[ResourceLane] = []
        for child in self.children:
            found.append(child)
            found.extend(child.descendants())
        return found


# ---------------------------------------------------------------------------
# Health spans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HealthSpan:
    start: datetime
    end: datetime
    health: HealthState
    created_before: datetime | None = None

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass
class HealthSpanResult:
    spans: list[HealthSpan] = field(default_factory=list)
    created_at: datetime | None = None
    created_before_window: bool = False


# ---------------------------------------------------------------------------
# Time window
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TimeWindow:
    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, ts: datetime) -> bool:
        return self.start <= ts <= self.end


# ---------------------------------------------------------------------------
# Live collection
# ---------------------------------------------------------------------------


@dataclass
class ClusterSnapshot:
    """Raw K8s API objects captured once by the live collector.

    Event extraction and topology building both read from this so the
    cluster is only queried during collection.
    """

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    pods: list[Any] = field(default_factory=list)
    deployments: list[Any] = field(default_factory=list)
    replicasets: list[Any] = field(default_factory=list)
    statefulsets: list[Any] = field(default_factory=list)
    daemonsets: list[Any] = field(default_factory=list)
    services: list[Any] = field(default_factory=list)
    jobs: list[Any] = field(default_factory=list)
    cronjobs: list[Any] = field(default_factory=list)
    ingresses: list[Any] = field(default_factory=list)
    configmaps: list[Any] = field(default_factory=list)
    hpas: list[Any] = field(default_factory=list)
    events: list[Any] = field(default_factory=list)

    def resources(self) -> list[tuple[str, Any]]:
        """(kind, object) pairs for every tracked resource."""
        kinds = [
            ("Pod", self.pods),
            ("Deployment", self.deployments),
            ("ReplicaSet", self.replicasets),
            ("StatefulSet", self.statefulsets),
            ("DaemonSet", self.daemonsets),
            ("Service", self.services),
            ("Job", self.jobs),
            ("CronJob", self.cronjobs),
            ("Ingress", self.ingresses),
            ("ConfigMap", self.configmaps),
            ("HorizontalPodAutoscaler", self.hpas),
        ]
        return [(kind, obj) for kind, items in kinds for obj in items]
