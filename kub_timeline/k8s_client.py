"""Cluster connection for the live timeline collector."""

from __future__ import annotations

import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client import (
    AppsV1Api,
    AutoscalingV2Api,
    BatchV1Api,
    CoreV1Api,
    NetworkingV1Api,
)
from kubernetes.config.config_exception import ConfigException

logger = logging.getLogger(__name__)

IN_CLUSTER = "in-cluster"


class K8sClient:
    """One API client per session; each API group is built on first use."""

    def __init__(self, kubeconfig: str | None = None, context: str | None = None):
        self.kubeconfig = kubeconfig
        self.context = context
        self.in_cluster = False
        self._api_client: client.ApiClient | None = None
        self._groups: dict[type, Any] = {}

    def connect(self) -> None:
        """Load kubeconfig (or the pod's service account) and open the client."""
        try:
            config.load_kube_config(config_file=self.kubeconfig, context=self.context)
        except ConfigException as exc:
            logger.debug("kubeconfig unusable (%s), trying in-cluster config", exc)
            config.load_incluster_config()
            self.in_cluster = True

        self._api_client = client.ApiClient()
        self._groups.clear()

    @property
    def api(self) -> client.ApiClient:
        if self._api_client is None:
            raise RuntimeError("K8sClient not connected. Call connect() first.")
        return self._api_client

    def _group(self, api_cls: type) -> Any:
        if api_cls not in self._groups:
            self._groups[api_cls] = api_cls(self.api)
        return self._groups[api_cls]

    @property
    def core_v1(self) -> CoreV1Api:
        return self._group(CoreV1Api)

    @property
    def apps_v1(self) -> AppsV1Api:
        return self._group(AppsV1Api)

    @property
    def batch_v1(self) -> BatchV1Api:
        return self._group(BatchV1Api)

    @property
    def networking_v1(self) -> NetworkingV1Api:
        return self._group(NetworkingV1Api)

    @property
    def autoscaling_v2(self) -> AutoscalingV2Api:
        return self._group(AutoscalingV2Api)

    def _active_context(self) -> dict[str, Any] | None:
        if self.in_cluster:
            return None
        try:
            contexts, active = config.list_kube_config_contexts(config_file=self.kubeconfig)
        except ConfigException:
            return None
        if self.context:
            # An explicit --context wins over the kubeconfig's current-context
            for ctx in contexts:
                if ctx.get("name") == self.context:
                    return ctx
        return active

    def get_cluster_name(self) -> str:
        """Cluster name of the context in use, for the timeline title."""
        ctx = self._active_context()
        if ctx is None:
            return IN_CLUSTER
        return ctx.get("context", {}).get("cluster", "unknown")

    def get_context_name(self) -> str:
        ctx = self._active_context()
        if ctx is None:
            return IN_CLUSTER
        return ctx.get("name", "unknown")
