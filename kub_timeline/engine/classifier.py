"""Event classifier.

Tags each event as routine or not, problematic or not, and maps critical
reasons onto a small set of issue categories the renderer uses for icons.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from kub_timeline.models import EventCategory, Operation, TimelineEvent


class IssueCategory(str, Enum):
    """Icon families for critical reasons."""

    MEMORY = "memory"
    CRASH = "crash-restart"
    IMAGE_PULL = "image-pull"
    CONTAINER_RUNTIME = "container-runtime"
    SCHEDULING = "scheduling-node"
    RESOURCE_PRESSURE = "resource-pressure"
    ROLLOUT = "rollout"
    SCALING = "scaling"
    STORAGE = "storage"
    JOB_TIMEOUT = "job-timeout"
    GENERIC_FAILURE = "generic-failure"

    @property
    def symbol(self) -> str:
        return {
            IssueCategory.MEMORY: "M",
            IssueCategory.CRASH: "R",
            IssueCategory.IMAGE_PULL: "I",
            IssueCategory.CONTAINER_RUNTIME: "C",
            IssueCategory.SCHEDULING: "S",
            IssueCategory.RESOURCE_PRESSURE: "P",
            IssueCategory.ROLLOUT: "D",
            IssueCategory.SCALING: "H",
            IssueCategory.STORAGE: "V",
            IssueCategory.JOB_TIMEOUT: "T",
            IssueCategory.GENERIC_FAILURE: "!",
        }[self]


# Reasons that indicate problems even when the event type is "Normal"
_REASONS_BY_ISSUE: dict[IssueCategory, frozenset[str]] = {
    IssueCategory.MEMORY: frozenset(
        {"OOMKilled", "OOMKilling", "InsufficientMemory", "MemoryPressure"}
    ),
    IssueCategory.CRASH: frozenset({"CrashLoopBackOff", "BackOff"}),
    IssueCategory.IMAGE_PULL: frozenset(
        {"ImagePullBackOff", "ErrImagePull", "InvalidImageName"}
    ),
    IssueCategory.CONTAINER_RUNTIME: frozenset(
        {
            "CreateContainerConfigError",
            "CreateContainerError",
            "RunContainerError",
            "ContainerStatusUnknown",
        }
    ),
    IssueCategory.SCHEDULING: frozenset(
        {
            "FailedScheduling",
            "FailedMount",
            "FailedAttachVolume",
            "NodeNotReady",
            "NetworkNotReady",
            "KubeletNotReady",
            "NodeStatusUnknown",
            "HostPortConflict",
        }
    ),
    IssueCategory.RESOURCE_PRESSURE: frozenset(
        {"DiskPressure", "PIDPressure", "InsufficientCPU"}
    ),
    IssueCategory.ROLLOUT: frozenset(
        {"ProgressDeadlineExceeded", "ReplicaFailure", "MinimumReplicasUnavailable"}
    ),
    IssueCategory.SCALING: frozenset(
        {
            "FailedGetScale",
            "FailedRescale",
            "FailedUpdateScale",
            "FailedGetResourceMetric",
            "FailedComputeMetricsReplicas",
        }
    ),
    IssueCategory.STORAGE: frozenset(
        {"ProvisioningFailed", "FailedBinding", "VolumeFailedDelete"}
    ),
    IssueCategory.JOB_TIMEOUT: frozenset({"DeadlineExceeded", "BackoffLimitExceeded"}),
    IssueCategory.GENERIC_FAILURE: frozenset(
        {
            "Failed",
            "Error",
            "Unhealthy",
            "Killing",
            "Evicted",
            "FailedCreate",
            "FailedDelete",
            "FailedSync",
            "FailedValidation",
            "FailedPreStopHook",
            "FailedPostStartHook",
        }
    ),
}

CRITICAL_REASONS: frozenset[str] = frozenset().union(*_REASONS_BY_ISSUE.values())

PROBLEMATIC_REASONS: frozenset[str] = CRITICAL_REASONS

# Kinds whose update churn carries no information
NOISY_KINDS = frozenset({"Lease", "Endpoints", "EndpointSlice", "Event"})

NOISY_NAME_PATTERNS = [
    re.compile(p)
    for p in (
        r"^kube-scheduler$",
        r"^kube-controller-manager$",
        r"-leader-election$",
        r"-lock$",
        r"-lease$",
        r"^cluster-autoscaler-status$",
        r"^cluster-kubestore$",
        r"^datadog-leader-election$",
        r"^cert-manager-controller$",
    )
]

NOISY_CONFIGMAP_SUFFIXES = ("-lock", "-lease", "-leader")


@dataclass(frozen=True)
class EventClassification:
    category: EventCategory
    is_problematic: bool
    is_critical: bool
    is_routine: bool
    issue_category: IssueCategory | None = None


def issue_category(reason: str) -> IssueCategory | None:
    """Map a reason onto its icon family, or None for benign reasons."""
    if not reason:
        return None
    for category, reasons in _REASONS_BY_ISSUE.items():
        if reason in reasons:
            return category
    if reason.startswith("Failed"):
        return IssueCategory.GENERIC_FAILURE
    return None


def is_problematic(event: TimelineEvent) -> bool:
    if event.event_type == "Warning":
        return True
    return bool(event.reason) and event.reason in PROBLEMATIC_REASONS


def is_critical(event: TimelineEvent) -> bool:
    return bool(event.reason) and event.reason in CRITICAL_REASONS


def is_routine(event: TimelineEvent) -> bool:
    """Is this constant heartbeat/lease churn that default views hide?"""
    # Reconstructed events capture real state transitions
    if event.category == EventCategory.INFERRED:
        return False

    # The lifecycle of core/v1 Event objects themselves is always noise
    if event.kind == "Event" and event.category == EventCategory.CHANGE:
        return True

    # Adds and deletes are always interesting
    if event.operation != Operation.UPDATE:
        return False

    if event.kind in NOISY_KINDS:
        return True

    if any(p.search(event.name) for p in NOISY_NAME_PATTERNS):
        return True

    if event.kind == "ConfigMap":
        if event.name.endswith(NOISY_CONFIGMAP_SUFFIXES) or "kubestore" in event.name:
            return True

    return False


def classify(event: TimelineEvent) -> EventClassification:
    """Classify a single event. Pure; never raises."""
    return EventClassification(
        category=event.category,
        is_problematic=is_problematic(event),
        is_critical=is_critical(event),
        is_routine=is_routine(event),
        issue_category=issue_category(event.reason) if is_critical(event) else None,
    )


def render_priority(event: TimelineEvent) -> int:
    """Paint order for events sharing a timestamp. Higher paints on top."""
    if is_problematic(event):
        return 3
    if event.operation == Operation.DELETE:
        return 2
    if event.operation == Operation.ADD:
        return 1
    return 0
