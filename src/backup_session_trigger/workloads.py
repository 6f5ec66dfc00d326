from __future__ import annotations

import logging
from typing import Any, Callable

from .k8s import CapabilityProbe, KubernetesClients, TargetCheckError, safe_kubernetes_call
from .models import Invoker, TargetRef

KIND_DEPLOYMENT = "Deployment"
KIND_DAEMONSET = "DaemonSet"
KIND_STATEFULSET = "StatefulSet"
KIND_REPLICASET = "ReplicaSet"
KIND_REPLICATION_CONTROLLER = "ReplicationController"
KIND_PERSISTENT_VOLUME_CLAIM = "PersistentVolumeClaim"
KIND_APPBINDING = "AppBinding"
KIND_DEPLOYMENT_CONFIG = "DeploymentConfig"

APPCATALOG_GROUP = "appcatalog.appscode.com"
APPCATALOG_VERSION = "v1alpha1"
OPENSHIFT_APPS_GROUP = "apps.openshift.io"
OPENSHIFT_APPS_VERSION = "v1"

Lookup = Callable[[str, str], Any]

logger = logging.getLogger(__name__)


class TargetExistenceChecker:
    """Checks that the workloads an invoker backs up are still present.

    Standard workload kinds are always queried. OpenShift DeploymentConfigs are
    only queried when the capability probe reports that the cluster serves them;
    without a probe they are treated as absent.

    A target kind with no known lookup is reported as absent rather than raised,
    so an unrecognized workload takes the same skip path as a deleted one.
    """

    def __init__(
        self,
        clients: KubernetesClients,
        *,
        capability_probe: CapabilityProbe | None = None,
        request_timeout_seconds: int = 20,
    ) -> None:
        self.clients = clients
        self.capability_probe = capability_probe
        self.request_timeout_seconds = request_timeout_seconds

    def exists(self, ref: TargetRef, namespace: str) -> bool:
        lookup = self._lookup_for(ref.kind)
        if lookup is None:
            logger.debug("No lookup for target kind %s; treating %s as absent", ref.kind, ref.name)
            return False

        found = safe_kubernetes_call(
            operation=f"check {ref.kind} '{namespace}/{ref.name}' exists",
            hint=f"Verify RBAC allows get on {ref.kind} objects and retry.",
            func=lambda: lookup(ref.name, namespace),
            error_cls=TargetCheckError,
            none_on_status=(404,),
        )
        return found is not None

    def all_targets_exist(self, invoker: Invoker) -> tuple[bool, TargetRef | None]:
        for target in invoker.targets:
            if target.ref is None:
                continue
            if not self.exists(target.ref, target.ref.namespace or invoker.namespace):
                return False, target.ref
        return True, None

    def _lookup_for(self, kind: str) -> Lookup | None:
        apps_api = self.clients.apps_api
        core_api = self.clients.core_api
        timeout = self.request_timeout_seconds

        standard: dict[str, Lookup] = {
            KIND_DEPLOYMENT: lambda name, namespace: apps_api.read_namespaced_deployment(
                name=name, namespace=namespace, _request_timeout=timeout
            ),
            KIND_DAEMONSET: lambda name, namespace: apps_api.read_namespaced_daemon_set(
                name=name, namespace=namespace, _request_timeout=timeout
            ),
            KIND_STATEFULSET: lambda name, namespace: apps_api.read_namespaced_stateful_set(
                name=name, namespace=namespace, _request_timeout=timeout
            ),
            KIND_REPLICASET: lambda name, namespace: apps_api.read_namespaced_replica_set(
                name=name, namespace=namespace, _request_timeout=timeout
            ),
            KIND_REPLICATION_CONTROLLER: lambda name, namespace: core_api.read_namespaced_replication_controller(
                name=name, namespace=namespace, _request_timeout=timeout
            ),
            KIND_PERSISTENT_VOLUME_CLAIM: lambda name, namespace: core_api.read_namespaced_persistent_volume_claim(
                name=name, namespace=namespace, _request_timeout=timeout
            ),
            KIND_APPBINDING: lambda name, namespace: self._read_custom_object(
                APPCATALOG_GROUP, APPCATALOG_VERSION, "appbindings", name, namespace
            ),
        }
        if kind in standard:
            return standard[kind]

        if kind == KIND_DEPLOYMENT_CONFIG and self._platform_supports(
            f"{OPENSHIFT_APPS_GROUP}/{OPENSHIFT_APPS_VERSION}", KIND_DEPLOYMENT_CONFIG
        ):
            return lambda name, namespace: self._read_custom_object(
                OPENSHIFT_APPS_GROUP, OPENSHIFT_APPS_VERSION, "deploymentconfigs", name, namespace
            )
        return None

    def _platform_supports(self, group_version: str, kind: str) -> bool:
        if self.capability_probe is None:
            return False
        return self.capability_probe.supports(group_version, kind)

    def _read_custom_object(self, group: str, version: str, plural: str, name: str, namespace: str) -> Any:
        return self.clients.custom_api.get_namespaced_custom_object(
            group=group,
            version=version,
            namespace=namespace,
            plural=plural,
            name=name,
            _request_timeout=self.request_timeout_seconds,
        )
