"""Interestingness ranking.

Scores lanes with a fixed weighted heuristic so the resources worth looking
at surface first. Every factor is capped so no single signal dominates.

Ranking is two-phase: scoring is pure, and the order shown to the user only
changes when ``LaneOrder.commit`` is called, which keeps the list from
jumping around on every refresh.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from kub_timeline.engine.classifier import is_problematic
from kub_timeline.models import Operation, ResourceLane, ScoreBreakdown

KIND_SCORES = {
    # GitOps controllers
    "Application": 55,
    "Kustomization": 55,
    "HelmRelease": 55,
    # GitOps sources
    "GitRepository": 52,
    "OCIRepository": 52,
    "HelmRepository": 52,
    # Workloads
    "Deployment": 50,
    "Rollout": 50,
    "StatefulSet": 50,
    "DaemonSet": 50,
    # Networking
    "Service": 45,
    "Ingress": 45,
    # Batch
    "Job": 40,
    "CronJob": 40,
    "Workflow": 40,
    "CronWorkflow": 40,
    "Pod": 30,
    "HorizontalPodAutoscaler": 25,
    "ReplicaSet": 20,
    # Config
    "ConfigMap": 10,
    "Secret": 10,
    "PVC": 10,
}
DEFAULT_KIND_SCORE = 15

SYSTEM_NAMESPACES = frozenset({"kube-system", "kube-public", "kube-node-lease", "gke-managed-system"})

RECENT_WINDOW = timedelta(minutes=5)
ACTIVE_WINDOW = timedelta(minutes=30)

NOISY_UPDATE_THRESHOLD = 10


def score_lane(
    lane: ResourceLane,
    now: datetime,
    system_namespaces: frozenset[str] | set[str] = SYSTEM_NAMESPACES,
) -> ScoreBreakdown:
    """Score a lane from its own and descendant events."""
    events = lane.all_events_sorted or lane.events

    recent_cutoff = now - RECENT_WINDOW
    active_cutoff = now - ACTIVE_WINDOW
    recent = sum(1 for e in events if e.timestamp > recent_cutoff)
    active = sum(1 for e in events if active_cutoff < e.timestamp <= recent_cutoff)

    problems = sum(1 for e in events if is_problematic(e))

    operations = {e.operation for e in events if e.operation is not None}
    adds = sum(1 for e in events if e.operation == Operation.ADD)
    deletes = sum(1 for e in events if e.operation == Operation.DELETE)
    updates = sum(1 for e in events if e.operation == Operation.UPDATE)

    noisy = 0
    if updates > NOISY_UPDATE_THRESHOLD and len(operations) == 1:
        noisy = -min(updates, 40)

    return ScoreBreakdown(
        kind=KIND_SCORES.get(lane.kind, DEFAULT_KIND_SCORE),
        recent_5m=min(recent * 30, 150),
        recent_30m=min(active * 10, 50),
        problems=min(problems * 40, 200),
        variety=len(operations) * 10,
        add_delete=min(adds * 3, 30) + min(deletes * 5, 30),
        children=10 if lane.children else 0,
        empty=-30 if not lane.events else 0,
        system_ns=-30 if lane.namespace in system_namespaces else 0,
        noisy=noisy,
    )


def _scored(
    lanes: list[ResourceLane],
    now: datetime,
    system_namespaces: frozenset[str] | set[str],
) -> list[ResourceLane]:
    scored = []
    for lane in lanes:
        breakdown = score_lane(lane, now, system_namespaces)
        scored.append(replace(lane, score=breakdown.total, score_breakdown=breakdown))
    return scored


def rank_lanes(
    lanes: list[ResourceLane],
    now: datetime,
    order: dict[str, int] | None = None,
    system_namespaces: frozenset[str] | set[str] = SYSTEM_NAMESPACES,
) -> list[ResourceLane]:
    """Score lanes and sort them by total, highest first.

    Ties are broken by ``order`` (lane id -> position from a previous
    ranking), then by input order. Returns new lane objects; the inputs are
    left untouched.
    """
    order = order or {}
    scored = _scored(lanes, now, system_namespaces)
    fallback = len(order)
    keyed = [
        (-lane.score, order.get(lane.id, fallback + index), index, lane)
        for index, lane in enumerate(scored)
    ]
    keyed.sort(key=lambda item: item[:3])
    return [item[3] for item in keyed]


class LaneOrder:
    """The lane order the user currently sees.

    ``commit`` re-ranks by score and is only called on an explicit user
    action. ``arrange`` rescores lanes for display but keeps the committed
    order, appending lanes that appeared since the last commit and
    forgetting lanes that are no longer in the batch.
    """

    def __init__(self, system_namespaces: frozenset[str] | set[str] = SYSTEM_NAMESPACES):
        self.system_namespaces = system_namespaces
        self.epoch = 0
        self._positions: dict[str, int] = {}

    @property
    def positions(self) -> dict[str, int]:
        return dict(self._positions)

    def commit(self, lanes: list[ResourceLane], now: datetime) -> list[ResourceLane]:
        ranked = rank_lanes(lanes, now, self._positions, self.system_namespaces)
        self._positions = {lane.id: i for i, lane in enumerate(ranked)}
        self.epoch += 1
        return ranked

    def arrange(self, lanes: list[ResourceLane], now: datetime) -> list[ResourceLane]:
        if not self._positions:
            return self.commit(lanes, now)

        scored = _scored(lanes, now, self.system_namespaces)
        present = {lane.id for lane in scored}
        # Lanes gone from the batch give up their slot; survivors keep their order
        self._positions = {lane_id: pos for lane_id, pos in self._positions.items() if lane_id in present}
        next_pos = max(self._positions.values(), default=-1) + 1

        newcomers = [lane for lane in scored if lane.id not in self._positions]
        # Newcomers keep their relative rank among themselves
        newcomers.sort(key=lambda lane: -lane.score)
        for offset, lane in enumerate(newcomers):
            self._positions[lane.id] = next_pos + offset

        return sorted(scored, key=lambda lane: self._positions[lane.id])
