from __future__ import annotations

from dataclasses import dataclass
import copy
import logging
from typing import Any, Callable

from kubernetes import client

from .k8s import BackupTriggerError, safe_kubernetes_call
from .models import (
    KIND_BACKUP_SESSION,
    LABEL_INVOKER_NAME,
    LABEL_INVOKER_TYPE,
    Invoker,
    OwnerReference,
)

MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"

Mutation = Callable[[dict[str, Any]], dict[str, Any]]

logger = logging.getLogger(__name__)


class UpsertError(BackupTriggerError):
    """Raised when a create-or-patch write is rejected."""


@dataclass(frozen=True)
class CustomResourceType:
    group: str
    version: str
    plural: str
    kind: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


def backup_session_resource(api_group: str, api_version: str) -> CustomResourceType:
    return CustomResourceType(group=api_group, version=api_version, plural="backupsessions", kind=KIND_BACKUP_SESSION)


class CustomObjectUpserter:
    """Create-or-patch for namespaced custom objects.

    The object is read first. A missing object is created from ``meta`` passed
    through ``mutate``; an existing one is patched with a JSON merge patch of
    ``mutate(current)`` against ``current``, skipped when nothing changed. Patches
    carry the observed resourceVersion, so a concurrent writer makes the API
    server reject the patch instead of it being silently overwritten.
    """

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        resource: CustomResourceType,
        *,
        request_timeout_seconds: int = 20,
    ) -> None:
        self.custom_api = custom_api
        self.resource = resource
        self.request_timeout_seconds = request_timeout_seconds

    def upsert(self, meta: dict[str, Any], mutate: Mutation) -> tuple[dict[str, Any], bool]:
        namespace = meta["namespace"]
        name = meta["name"]

        current = self._get(namespace, name)
        if current is None:
            seed = {
                "apiVersion": self.resource.api_version,
                "kind": self.resource.kind,
                "metadata": copy.deepcopy(meta),
            }
            body = mutate(seed)
            created = self._call(
                "create",
                namespace,
                name,
                lambda: self.custom_api.create_namespaced_custom_object(
                    group=self.resource.group,
                    version=self.resource.version,
                    namespace=namespace,
                    plural=self.resource.plural,
                    body=body,
                    _request_timeout=self.request_timeout_seconds,
                ),
                none_on_status=(409,),
            )
            if created is not None:
                logger.info("Created %s %s/%s", self.resource.kind, namespace, name)
                return created, True

            # Created concurrently since the read above; fall through to a patch.
            current = self._get(namespace, name)
            if current is None:
                raise UpsertError(
                    f"{self.resource.kind} '{namespace}/{name}' was reported as existing but could not be read back."
                )

        return self._patch(current, mutate), False

    def _get(self, namespace: str, name: str) -> dict[str, Any] | None:
        return self._call(
            "read",
            namespace,
            name,
            lambda: self.custom_api.get_namespaced_custom_object(
                group=self.resource.group,
                version=self.resource.version,
                namespace=namespace,
                plural=self.resource.plural,
                name=name,
                _request_timeout=self.request_timeout_seconds,
            ),
            none_on_status=(404,),
        )

    def _patch(self, current: dict[str, Any], mutate: Mutation) -> dict[str, Any]:
        metadata = current.get("metadata") or {}
        namespace = metadata.get("namespace", "")
        name = metadata.get("name", "")

        patch = json_merge_patch(current, mutate(copy.deepcopy(current)))
        if not patch:
            logger.info("%s %s/%s is up to date", self.resource.kind, namespace, name)
            return current

        resource_version = metadata.get("resourceVersion")
        if resource_version:
            patch.setdefault("metadata", {})["resourceVersion"] = resource_version

        patched = self._call(
            "patch",
            namespace,
            name,
            lambda: self.custom_api.patch_namespaced_custom_object(
                group=self.resource.group,
                version=self.resource.version,
                namespace=namespace,
                plural=self.resource.plural,
                name=name,
                body=patch,
                _content_type=MERGE_PATCH_CONTENT_TYPE,
                _request_timeout=self.request_timeout_seconds,
            ),
        )
        logger.info("Patched %s %s/%s", self.resource.kind, namespace, name)
        return patched

    def _call(
        self,
        verb: str,
        namespace: str,
        name: str,
        func: Callable[[], dict[str, Any]],
        *,
        none_on_status: tuple[int, ...] = (),
    ) -> dict[str, Any] | None:
        return safe_kubernetes_call(
            operation=f"{verb} {self.resource.kind} '{namespace}/{name}'",
            hint=f"Verify RBAC allows {verb} on {self.resource.plural}.{self.resource.group}.",
            func=func,
            error_cls=UpsertError,
            none_on_status=none_on_status,
            status_hints={
                409: "The object changed while it was being written; re-run the trigger.",
                422: "The API server rejected the object as invalid.",
            },
        )


def json_merge_patch(current: dict[str, Any], desired: dict[str, Any]) -> dict[str, Any]:
    """Return the RFC 7386 merge patch that turns ``current`` into ``desired``."""
    patch: dict[str, Any] = {}
    for key in current.keys() - desired.keys():
        patch[key] = None
    for key, value in desired.items():
        if key in current and current[key] == value:
            continue
        old = current.get(key)
        if isinstance(old, dict) and isinstance(value, dict):
            patch[key] = json_merge_patch(old, value)
        else:
            patch[key] = value
    return patch


def ensure_owner_reference(metadata: dict[str, Any], owner: OwnerReference) -> None:
    owner_dict = owner.to_dict()
    references = list(metadata.get("ownerReferences") or [])
    for index, reference in enumerate(references):
        if _same_owner(reference, owner):
            references[index] = owner_dict
            break
    else:
        references.append(owner_dict)
    metadata["ownerReferences"] = references


def _same_owner(reference: dict[str, Any], owner: OwnerReference) -> bool:
    if owner.uid and reference.get("uid"):
        return reference["uid"] == owner.uid
    return (
        _api_group(reference.get("apiVersion", "")) == _api_group(owner.api_version)
        and reference.get("kind") == owner.kind
        and reference.get("name") == owner.name
    )


def _api_group(api_version: str) -> str:
    group, _, _ = api_version.rpartition("/")
    return group


def backup_session_mutation(invoker: Invoker, *, invoker_api_group: str) -> Mutation:
    """Build the mutation that wires a BackupSession to its invoker."""

    def mutate(session: dict[str, Any]) -> dict[str, Any]:
        session = copy.deepcopy(session)
        metadata = session.setdefault("metadata", {})
        ensure_owner_reference(metadata, invoker.owner_ref)

        spec = session.get("spec") or {}
        spec["invokerRef"] = {
            "apiGroup": invoker_api_group,
            "kind": invoker.kind,
            "name": invoker.name,
        }
        session["spec"] = spec

        labels = dict(metadata.get("labels") or {})
        labels.update(invoker.labels)
        labels[LABEL_INVOKER_NAME] = invoker.name
        labels[LABEL_INVOKER_TYPE] = invoker.kind
        metadata["labels"] = labels
        return session

    return mutate
