from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Callable

from kubernetes import client

from .k8s import BackupTriggerError, safe_kubernetes_call
from .models import (
    KIND_BACKUP_BATCH,
    KIND_BACKUP_CONFIGURATION,
    Invoker,
    ObjectReference,
    OwnerReference,
    TargetInfo,
    TargetRef,
)

logger = logging.getLogger(__name__)


class InvokerResolutionError(BackupTriggerError):
    """Raised when the backup invoker cannot be loaded."""


class UnsupportedInvokerKind(InvokerResolutionError):
    def __init__(self, kind: str) -> None:
        known = ", ".join(sorted(INVOKER_VARIANTS))
        super().__init__(f"Unsupported invoker type '{kind}'. Supported types: {known}.")
        self.kind = kind


class InvokerNotFound(InvokerResolutionError):
    def __init__(self, *, kind: str, name: str, namespace: str) -> None:
        super().__init__(f"{kind} '{namespace}/{name}' does not exist.")
        self.kind = kind
        self.name = name
        self.namespace = namespace


@dataclass(frozen=True)
class InvokerVariant:
    kind: str
    plural: str
    extract_targets: Callable[[dict[str, Any]], list[dict[str, Any] | None]]


def _backup_configuration_targets(spec: dict[str, Any]) -> list[dict[str, Any] | None]:
    return [spec.get("target")]


def _backup_batch_targets(spec: dict[str, Any]) -> list[dict[str, Any] | None]:
    return [(member or {}).get("target") for member in spec.get("members") or []]


INVOKER_VARIANTS: dict[str, InvokerVariant] = {
    KIND_BACKUP_CONFIGURATION: InvokerVariant(
        kind=KIND_BACKUP_CONFIGURATION,
        plural="backupconfigurations",
        extract_targets=_backup_configuration_targets,
    ),
    KIND_BACKUP_BATCH: InvokerVariant(
        kind=KIND_BACKUP_BATCH,
        plural="backupbatches",
        extract_targets=_backup_batch_targets,
    ),
}


class InvokerResolver:
    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        *,
        api_group: str,
        api_version: str,
        request_timeout_seconds: int = 20,
    ) -> None:
        self.custom_api = custom_api
        self.api_group = api_group
        self.api_version = api_version
        self.request_timeout_seconds = request_timeout_seconds

    def resolve(self, kind: str, name: str, namespace: str) -> Invoker:
        variant = INVOKER_VARIANTS.get(kind)
        if variant is None:
            raise UnsupportedInvokerKind(kind)

        obj = safe_kubernetes_call(
            operation=f"read {kind} '{namespace}/{name}'",
            hint=f"Verify RBAC allows get on {variant.plural}.{self.api_group}.",
            func=lambda: self.custom_api.get_namespaced_custom_object(
                group=self.api_group,
                version=self.api_version,
                namespace=namespace,
                plural=variant.plural,
                name=name,
                _request_timeout=self.request_timeout_seconds,
            ),
            error_cls=InvokerResolutionError,
            none_on_status=(404,),
        )
        if obj is None:
            raise InvokerNotFound(kind=kind, name=name, namespace=namespace)

        invoker = _normalize_invoker(
            obj,
            variant=variant,
            default_api_version=f"{self.api_group}/{self.api_version}",
            namespace=namespace,
        )
        logger.debug("Resolved %s %s/%s with %d target(s)", kind, namespace, name, len(invoker.targets))
        return invoker


def _normalize_invoker(
    obj: dict[str, Any],
    *,
    variant: InvokerVariant,
    default_api_version: str,
    namespace: str,
) -> Invoker:
    metadata = obj.get("metadata") or {}
    api_version = obj.get("apiVersion") or default_api_version
    name = metadata.get("name") or ""
    object_namespace = metadata.get("namespace") or namespace
    uid = metadata.get("uid") or ""

    targets = tuple(
        TargetInfo(ref=_target_ref(target, object_namespace))
        for target in variant.extract_targets(obj.get("spec") or {})
    )

    return Invoker(
        kind=variant.kind,
        name=name,
        namespace=object_namespace,
        owner_ref=OwnerReference(api_version=api_version, kind=variant.kind, name=name, uid=uid),
        object_ref=ObjectReference(
            api_version=api_version,
            kind=variant.kind,
            name=name,
            namespace=object_namespace,
            uid=uid,
            resource_version=metadata.get("resourceVersion"),
        ),
        labels=dict(metadata.get("labels") or {}),
        targets=targets,
    )


def _target_ref(target: dict[str, Any] | None, namespace: str) -> TargetRef | None:
    if not target or not target.get("ref"):
        return None
    ref = target["ref"]
    return TargetRef(
        kind=ref.get("kind") or "",
        name=ref.get("name") or "",
        namespace=ref.get("namespace") or namespace,
        api_version=ref.get("apiVersion"),
    )
