"""Topology builder.

Maps relationships between resources in a snapshot so the hierarchy builder
can nest lanes that carry no owner references (a Service over the workload
it exposes, a ConfigMap under the Deployment that mounts it, and so on).
"""

from __future__ import annotations

from typing import Any

from kub_timeline.models import ClusterSnapshot, Topology, TopologyEdge, TopologyNode

# Workloads whose pod template a Service selector can match
_TEMPLATED = ("Deployment", "StatefulSet", "DaemonSet")


def node_id(kind: str, namespace: str | None, name: str) -> str:
    return f"{kind.lower()}/{namespace or ''}/{name}"


def build_topology(snap: ClusterSnapshot) -> Topology:
    """Build a topology graph from a cluster snapshot."""
    topology = Topology()
    seen: set[str] = set()

    for kind, obj in snap.resources():
        _add_node(topology, seen, kind, obj)

    _map_service_to_workloads(topology, snap)
    _map_service_to_pods(topology, snap)
    _map_ingress_to_service(topology, snap)
    _map_workload_to_config(topology, snap)
    _map_hpa_to_workload(topology, snap)

    return topology


def _add_node(topology: Topology, seen: set[str], kind: str, obj: Any) -> None:
    meta = obj.metadata
    nid = node_id(kind, meta.namespace, meta.name)
    if nid in seen:
        return
    seen.add(nid)
    topology.nodes.append(
        TopologyNode(id=nid, kind=kind, name=meta.name, labels=dict(meta.labels or {}))
    )


def _selects(selector: dict[str, str], labels: dict[str, str]) -> bool:
    return all(labels.get(k) == v for k, v in selector.items())


def _templated(snap: ClusterSnapshot) -> list[tuple[str, Any]]:
    return (
        [("Deployment", d) for d in snap.deployments]
        + [("StatefulSet", s) for s in snap.statefulsets]
        + [("DaemonSet", d) for d in snap.daemonsets]
    )


def _template_labels(workload: Any) -> dict[str, str]:
    template = workload.spec.template if workload.spec else None
    if template is None or template.metadata is None:
        return {}
    return dict(template.metadata.labels or {})


def _map_service_to_workloads(topology: Topology, snap: ClusterSnapshot) -> None:
    """Service -> Deployment/StatefulSet/DaemonSet (via pod template labels)."""
    for svc in snap.services:
        if not svc.spec or not svc.spec.selector:
            continue
        selector = dict(svc.spec.selector)
        ns = svc.metadata.namespace
        svc_id = node_id("Service", ns, svc.metadata.name)

        for kind, workload in _templated(snap):
            if workload.metadata.namespace != ns:
                continue
            if _selects(selector, _template_labels(workload)):
                topology.edges.append(
                    TopologyEdge(
                        source=svc_id,
                        target=node_id(kind, ns, workload.metadata.name),
                        type="exposes",
                    )
                )


def _map_service_to_pods(topology: Topology, snap: ClusterSnapshot) -> None:
    """Service -> Pods (via label selector).

    Pods behind a ReplicaSet reach the Service through their workload, so the
    direct edge is dropped whenever ReplicaSets are on screen.
    """
    for svc in snap.services:
        if not svc.spec or not svc.spec.selector:
            continue
        selector = dict(svc.spec.selector)
        ns = svc.metadata.namespace
        svc_id = node_id("Service", ns, svc.metadata.name)

        for pod in snap.pods:
            if pod.metadata.namespace != ns:
                continue
            if _selects(selector, dict(pod.metadata.labels or {})):
                topology.edges.append(
                    TopologyEdge(
                        source=svc_id,
                        target=node_id("Pod", ns, pod.metadata.name),
                        type="exposes",
                        skip_if_kind_visible="ReplicaSet",
                    )
                )


def _map_ingress_to_service(topology: Topology, snap: ClusterSnapshot) -> None:
    """Ingress -> Service."""
    for ing in snap.ingresses:
        ns = ing.metadata.namespace
        ing_id = node_id("Ingress", ns, ing.metadata.name)
        backends = []
        if ing.spec.default_backend and ing.spec.default_backend.service:
            backends.append(ing.spec.default_backend.service.name)
        for rule in ing.spec.rules or []:
            if not rule.http:
                continue
            for path in rule.http.paths or []:
                if path.backend and path.backend.service:
                    backends.append(path.backend.service.name)

        for svc_name in dict.fromkeys(backends):
            topology.edges.append(
                TopologyEdge(
                    source=ing_id,
                    target=node_id("Service", ns, svc_name),
                    type="routes-to",
                )
            )


def _config_refs(pod_spec: Any) -> list[tuple[str, str]]:
    """(kind, name) of every ConfigMap/Secret a pod spec mounts or reads."""
    refs: list[tuple[str, str]] = []
    for vol in pod_spec.volumes or []:
        if vol.config_map:
            refs.append(("ConfigMap", vol.config_map.name))
        if vol.secret:
            refs.append(("Secret", vol.secret.secret_name))

    for container in pod_spec.containers or []:
        for env in container.env or []:
            if not env.value_from:
                continue
            if env.value_from.config_map_key_ref:
                refs.append(("ConfigMap", env.value_from.config_map_key_ref.name))
            if env.value_from.secret_key_ref:
                refs.append(("Secret", env.value_from.secret_key_ref.name))
        for env_from in container.env_from or []:
            if env_from.config_map_ref:
                refs.append(("ConfigMap", env_from.config_map_ref.name))
            if env_from.secret_ref:
                refs.append(("Secret", env_from.secret_ref.name))

    return list(dict.fromkeys(refs))


def _map_workload_to_config(topology: Topology, snap: ClusterSnapshot) -> None:
    """Deployment/StatefulSet/DaemonSet/Job -> ConfigMap/Secret (uses)."""
    owners = _templated(snap) + [("Job", j) for j in snap.jobs]
    for kind, workload in owners:
        template = workload.spec.template if workload.spec else None
        if template is None or template.spec is None:
            continue
        ns = workload.metadata.namespace
        source = node_id(kind, ns, workload.metadata.name)
        for ref_kind, ref_name in _config_refs(template.spec):
            topology.edges.append(
                TopologyEdge(source=source, target=node_id(ref_kind, ns, ref_name), type="uses")
            )


def _map_hpa_to_workload(topology: Topology, snap: ClusterSnapshot) -> None:
    """HorizontalPodAutoscaler -> its scale target (scales)."""
    for hpa in snap.hpas:
        target = hpa.spec.scale_target_ref if hpa.spec else None
        if not target:
            continue
        ns = hpa.metadata.namespace
        topology.edges.append(
            TopologyEdge(
                source=node_id("HorizontalPodAutoscaler", ns, hpa.metadata.name),
                target=node_id(target.kind, ns, target.name),
                type="scales",
            )
        )
