from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

STASH_API_GROUP = "stash.appscode.com"
STASH_API_VERSION = "v1beta1"

KIND_BACKUP_CONFIGURATION = "BackupConfiguration"
KIND_BACKUP_BATCH = "BackupBatch"
KIND_BACKUP_SESSION = "BackupSession"

# Consumed by the BackupSession controller to discover sessions for its invoker.
LABEL_INVOKER_NAME = "invoker-name"
LABEL_INVOKER_TYPE = "invoker-type"

EVENT_TYPE_NORMAL = "Normal"
EVENT_REASON_BACKUP_SKIPPED = "BackupSkipped"


@dataclass(frozen=True)
class OwnerReference:
    api_version: str
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.uid,
            "controller": self.controller,
            "blockOwnerDeletion": self.block_owner_deletion,
        }


@dataclass(frozen=True)
class ObjectReference:
    api_version: str
    kind: str
    name: str
    namespace: str
    uid: str
    resource_version: str | None = None


@dataclass(frozen=True)
class TargetRef:
    kind: str
    name: str
    namespace: str
    api_version: str | None = None


@dataclass(frozen=True)
class TargetInfo:
    ref: TargetRef | None


@dataclass(frozen=True)
class Invoker:
    kind: str
    name: str
    namespace: str
    owner_ref: OwnerReference
    object_ref: ObjectReference
    labels: dict[str, str] = field(default_factory=dict)
    targets: tuple[TargetInfo, ...] = ()


@dataclass(frozen=True)
class TriggerOutcome:
    status: str
    session_name: str | None = None
    message: str = ""
    missing_target: TargetRef | None = None

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"
