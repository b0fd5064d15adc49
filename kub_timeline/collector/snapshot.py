"""Cluster snapshot collector.

Lists every kind the timeline tracks once and keeps the raw client objects
in a ClusterSnapshot. Event reconstruction and topology building read the
snapshot, so the API server is only queried here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from kubernetes.client.exceptions import ApiException
from rich.progress import Progress

from kub_timeline.k8s_client import K8sClient
from kub_timeline.models import ClusterSnapshot

logger = logging.getLogger(__name__)

# (progress label, snapshot field, API group property, client method stem)
# The stem expands to list_namespaced_<stem> / list_<stem>_for_all_namespaces.
LISTINGS: list[tuple[str, str, str, str]] = [
    ("Pods", "pods", "core_v1", "pod"),
    ("Services", "services", "core_v1", "service"),
    ("ConfigMaps", "configmaps", "core_v1", "config_map"),
    ("Events", "events", "core_v1", "event"),
    ("Deployments", "deployments", "apps_v1", "deployment"),
    ("ReplicaSets", "replicasets", "apps_v1", "replica_set"),
    ("StatefulSets", "statefulsets", "apps_v1", "stateful_set"),
    ("DaemonSets", "daemonsets", "apps_v1", "daemon_set"),
    ("Jobs", "jobs", "batch_v1", "job"),
    ("CronJobs", "cronjobs", "batch_v1", "cron_job"),
    ("Ingresses", "ingresses", "networking_v1", "ingress"),
    ("HPAs", "hpas", "autoscaling_v2", "horizontal_pod_autoscaler"),
]


def _list_items(api: Any, stem: str, namespace: str | None) -> list[Any]:
    """Run one list call, returning [] when the API refuses it."""
    if namespace:
        method, kwargs = f"list_namespaced_{stem}", {"namespace": namespace}
    else:
        method, kwargs = f"list_{stem}_for_all_namespaces", {}
    try:
        return list(getattr(api, method)(**kwargs).items or [])
    except ApiException as exc:
        # RBAC denial or an API group the cluster does not serve
        logger.debug("%s failed: %s %s", method, exc.status, exc.reason)
        return []


def collect_snapshot(
    k8s: K8sClient,
    namespace: str | None = None,
    progress: Progress | None = None,
) -> ClusterSnapshot:
    """List the tracked kinds into a new snapshot.

    Args:
        k8s: Connected K8sClient.
        namespace: Only this namespace; None lists every namespace.
        progress: Optional Rich Progress to report each listing on.
    """
    snap = ClusterSnapshot(timestamp=datetime.now(timezone.utc))
    task_id = progress.add_task("Listing resources...", total=len(LISTINGS)) if progress else None

    for label, field_name, group, stem in LISTINGS:
        if progress:
            progress.update(task_id, description=f"Listing {label}...")
        setattr(snap, field_name, _list_items(getattr(k8s, group), stem, namespace))
        if progress:
            progress.advance(task_id)

    logger.debug(
        "snapshot of %s: %d resources, %d events",
        namespace or "all namespaces",
        len(snap.resources()),
        len(snap.events),
    )
    return snap
