"""Typed views over Kubernetes API objects.

The collector converts each raw client object into one of a few tagged
payload variants before deriving health, so health extraction is checked
per kind instead of poking at arbitrary attributes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from kub_timeline.models import HealthState

WORKLOAD_KINDS = ("Deployment", "StatefulSet", "DaemonSet", "ReplicaSet")

# Waiting reasons that mean the container will not come up by itself
FATAL_WAITING_REASONS = frozenset(
    {
        "CrashLoopBackOff",
        "ImagePullBackOff",
        "ErrImagePull",
        "InvalidImageName",
        "CreateContainerConfigError",
        "CreateContainerError",
        "RunContainerError",
    }
)


@dataclass(frozen=True)
class PodPayload:
    phase: str = "Unknown"
    ready: bool = False
    waiting_reasons: tuple[str, ...] = ()
    terminated_reasons: tuple[str, ...] = ()
    restart_count: int = 0


@dataclass(frozen=True)
class WorkloadPayload:
    kind: str
    desired: int = 0
    ready: int = 0
    updated: int = 0
    available: int = 0
    conditions: dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class JobPayload:
    active: int = 0
    succeeded: int = 0
    failed: int = 0
    conditions: dict[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class GenericPayload:
    kind: str
    properties: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


ResourcePayload = Union[PodPayload, WorkloadPayload, JobPayload, GenericPayload]


def _conditions(status: Any) -> dict[str, str]:
    return {c.type: c.status for c in (getattr(status, "conditions", None) or []) if c.type}


def _container_reasons(statuses: list[Any] | None) -> tuple[tuple[str, ...], tuple[str, ...], int]:
    waiting: list[str] = []
    terminated: list[str] = []
    restarts = 0
    for cs in statuses or []:
        restarts += cs.restart_count or 0
        state = cs.state
        if state is None:
            continue
        if state.waiting and state.waiting.reason:
            waiting.append(state.waiting.reason)
        if state.terminated and state.terminated.reason:
            terminated.append(state.terminated.reason)
    return tuple(waiting), tuple(terminated), restarts


def payload_from_object(kind: str, obj: Any) -> ResourcePayload:
    """Wrap a kubernetes client object in its payload variant."""
    status = getattr(obj, "status", None)

    if kind == "Pod" and status is not None:
        waiting, terminated, restarts = _container_reasons(status.container_statuses)
        ready = _conditions(status).get("Ready") == "True"
        return PodPayload(
            phase=status.phase or "Unknown",
            ready=ready,
            waiting_reasons=waiting,
            terminated_reasons=terminated,
            restart_count=restarts,
        )

    if kind in WORKLOAD_KINDS and status is not None:
        spec = getattr(obj, "spec", None)
        if kind == "DaemonSet":
            desired = status.desired_number_scheduled or 0
            ready = status.number_ready or 0
            updated = status.updated_number_scheduled or 0
            available = status.number_available or 0
        else:
            replicas = getattr(spec, "replicas", None)
            desired = replicas if replicas is not None else 1
            ready = status.ready_replicas or 0
            updated = getattr(status, "updated_replicas", None) or 0
            available = status.available_replicas or 0
        return WorkloadPayload(
            kind=kind,
            desired=desired,
            ready=ready,
            updated=updated,
            available=available,
            conditions=_conditions(status),
        )

    if kind == "Job" and status is not None:
        return JobPayload(
            active=status.active or 0,
            succeeded=status.succeeded or 0,
            failed=status.failed or 0,
            conditions=_conditions(status),
        )

    return GenericPayload(kind=kind, properties={"has_status": status is not None})


def derive_health(payload: ResourcePayload) -> tuple[HealthState, str]:
    """Health and the reason behind it for a payload."""
    if isinstance(payload, PodPayload):
        fatal = [r for r in payload.waiting_reasons if r in FATAL_WAITING_REASONS]
        if fatal:
            return HealthState.UNHEALTHY, fatal[0]
        if "OOMKilled" in payload.terminated_reasons:
            return HealthState.UNHEALTHY, "OOMKilled"
        if payload.phase == "Failed":
            return HealthState.UNHEALTHY, "Failed"
        if payload.phase == "Succeeded":
            return HealthState.HEALTHY, "Completed"
        if payload.phase == "Running" and payload.ready:
            return HealthState.HEALTHY, ""
        if payload.phase in ("Running", "Pending"):
            return HealthState.DEGRADED, "NotReady"
        return HealthState.UNKNOWN, ""

    if isinstance(payload, WorkloadPayload):
        if payload.conditions.get("ReplicaFailure") == "True":
            return HealthState.UNHEALTHY, "ReplicaFailure"
        if payload.desired == 0:
            return HealthState.HEALTHY, "ScaledToZero"
        if payload.ready == 0:
            return HealthState.UNHEALTHY, "MinimumReplicasUnavailable"
        if payload.ready < payload.desired:
            if payload.updated < payload.desired:
                return HealthState.ROLLING, "RollingUpdate"
            return HealthState.DEGRADED, "ReplicasNotReady"
        return HealthState.HEALTHY, ""

    if isinstance(payload, JobPayload):
        if payload.conditions.get("Failed") == "True":
            return HealthState.UNHEALTHY, "BackoffLimitExceeded"
        if payload.conditions.get("Complete") == "True":
            return HealthState.HEALTHY, "Completed"
        if payload.failed:
            return HealthState.DEGRADED, "Retrying"
        return HealthState.HEALTHY, ""

    return HealthState.UNKNOWN, ""


def last_transition(obj: Any) -> datetime | None:
    """Latest condition transition time on an object's status, if any."""
    status = getattr(obj, "status", None)
    stamps = []
    for cond in getattr(status, "conditions", None) or []:
        ts = cond.last_transition_time or getattr(cond, "last_update_time", None)
        if ts is None:
            continue
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        stamps.append(ts)
    return max(stamps) if stamps else None
