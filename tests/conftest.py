from __future__ import annotations

import copy
import itertools
from typing import Any
from unittest.mock import Mock

import pytest
from kubernetes.client import ApiException

from backup_session_trigger.k8s import KubernetesClients

STASH_GROUP = "stash.appscode.com"
STASH_VERSION = "v1beta1"


class FakeCustomObjectsApi:
    """In-memory stand-in for CustomObjectsApi with API-server-like conflict rules."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str, str, str], dict[str, Any]] = {}
        self.writes: list[tuple[str, str, str]] = []
        self._versions = itertools.count(100)
        self.fail_get_with: Exception | None = None
        self.fail_create_with: Exception | None = None
        self.fail_patch_with: Exception | None = None

    def add(self, *, group: str, version: str, plural: str, obj: dict[str, Any]) -> None:
        metadata = obj["metadata"]
        self.objects[(group, version, metadata["namespace"], plural, metadata["name"])] = copy.deepcopy(obj)

    def stored(self, plural: str, namespace: str | None = None) -> list[dict[str, Any]]:
        return [
            obj
            for (_, _, obj_namespace, obj_plural, _), obj in sorted(self.objects.items())
            if obj_plural == plural and (namespace is None or obj_namespace == namespace)
        ]

    def get_namespaced_custom_object(self, group, version, namespace, plural, name, **_kwargs):
        if self.fail_get_with is not None:
            raise self.fail_get_with
        key = (group, version, namespace, plural, name)
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(self.objects[key])

    def create_namespaced_custom_object(self, group, version, namespace, plural, body, **_kwargs):
        if self.fail_create_with is not None:
            raise self.fail_create_with
        name = body["metadata"]["name"]
        key = (group, version, namespace, plural, name)
        if key in self.objects:
            raise ApiException(status=409, reason="AlreadyExists")
        stored = copy.deepcopy(body)
        stored["metadata"]["uid"] = f"uid-{name}"
        stored["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[key] = stored
        self.writes.append(("create", plural, name))
        return copy.deepcopy(stored)

    def patch_namespaced_custom_object(self, group, version, namespace, plural, name, body, **_kwargs):
        if self.fail_patch_with is not None:
            raise self.fail_patch_with
        key = (group, version, namespace, plural, name)
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        current = self.objects[key]
        expected_version = (body.get("metadata") or {}).get("resourceVersion")
        if expected_version and expected_version != current["metadata"].get("resourceVersion"):
            raise ApiException(status=409, reason="Conflict")
        patched = apply_merge_patch(current, body)
        patched["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[key] = patched
        self.writes.append(("patch", plural, name))
        return copy.deepcopy(patched)


def apply_merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    result = copy.deepcopy(target)
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = apply_merge_patch(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def backup_configuration(
    *,
    name: str = "nightly-backup",
    namespace: str = "demo",
    target: tuple[str, str] | None = ("Deployment", "web"),
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    spec: dict[str, Any] = {"repository": {"name": "gcs-repo"}, "schedule": "0 2 * * *"}
    if target is not None:
        spec["target"] = {"ref": {"apiVersion": "apps/v1", "kind": target[0], "name": target[1]}}
    return {
        "apiVersion": f"{STASH_GROUP}/{STASH_VERSION}",
        "kind": "BackupConfiguration",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"{name}-uid",
            "resourceVersion": "42",
            "labels": labels if labels is not None else {"team": "storage"},
        },
        "spec": spec,
    }


def backup_batch(
    *,
    name: str = "batch-backup",
    namespace: str = "demo",
    members: list[tuple[str, str] | None],
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    member_specs: list[dict[str, Any]] = []
    for member in members:
        if member is None:
            member_specs.append({"task": {"name": "pg-backup"}})
            continue
        kind, workload = member
        member_specs.append({"target": {"ref": {"apiVersion": "apps/v1", "kind": kind, "name": workload}}})

    return {
        "apiVersion": f"{STASH_GROUP}/{STASH_VERSION}",
        "kind": "BackupBatch",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": f"{name}-uid",
            "resourceVersion": "7",
            "labels": labels or {},
        },
        "spec": {"members": member_specs},
    }


def clients_with(
    *,
    custom_api: Any | None = None,
    core_api: Mock | None = None,
    apps_api: Mock | None = None,
    apis_api: Mock | None = None,
    api_client: Mock | None = None,
) -> KubernetesClients:
    return KubernetesClients(
        api_client=api_client or Mock(),
        core_api=core_api or Mock(),
        apps_api=apps_api or Mock(),
        custom_api=custom_api or FakeCustomObjectsApi(),
        apis_api=apis_api or Mock(),
    )


@pytest.fixture
def fake_custom_api() -> FakeCustomObjectsApi:
    return FakeCustomObjectsApi()
