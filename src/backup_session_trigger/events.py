from __future__ import annotations

from datetime import UTC, datetime
import logging
import time
from typing import Callable

from kubernetes import client

from .k8s import BackupTriggerError, safe_kubernetes_call
from .models import EVENT_REASON_BACKUP_SKIPPED, EVENT_TYPE_NORMAL, ObjectReference, TriggerOutcome

logger = logging.getLogger(__name__)


class EventWriteError(BackupTriggerError):
    """Raised when the skip event could not be recorded.

    The skip decision stands; ``outcome`` carries it when the error is raised
    from a trigger run.
    """

    def __init__(self, message: str, *, outcome: TriggerOutcome | None = None) -> None:
        super().__init__(message)
        self.outcome = outcome


class EventNotifier:
    def __init__(
        self,
        core_api: client.CoreV1Api,
        *,
        source_component: str,
        request_timeout_seconds: int = 20,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.core_api = core_api
        self.source_component = source_component
        self.request_timeout_seconds = request_timeout_seconds
        self.clock = clock or _utc_now

    def record_skip(self, subject: ObjectReference, message: str) -> client.CoreV1Event:
        return self.record(
            subject,
            event_type=EVENT_TYPE_NORMAL,
            reason=EVENT_REASON_BACKUP_SKIPPED,
            message=message,
        )

    def record(
        self,
        subject: ObjectReference,
        *,
        event_type: str,
        reason: str,
        message: str,
    ) -> client.CoreV1Event:
        now = self.clock()
        event = client.CoreV1Event(
            metadata=client.V1ObjectMeta(
                name=f"{subject.name}.{time.time_ns():x}",
                namespace=subject.namespace,
            ),
            involved_object=client.V1ObjectReference(
                api_version=subject.api_version,
                kind=subject.kind,
                name=subject.name,
                namespace=subject.namespace,
                uid=subject.uid or None,
                resource_version=subject.resource_version,
            ),
            type=event_type,
            reason=reason,
            message=message,
            source=client.V1EventSource(component=self.source_component),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )

        created = safe_kubernetes_call(
            operation=f"record {reason} event for {subject.kind} '{subject.namespace}/{subject.name}'",
            hint="Verify RBAC allows create on events.",
            func=lambda: self.core_api.create_namespaced_event(
                namespace=subject.namespace,
                body=event,
                _request_timeout=self.request_timeout_seconds,
            ),
            error_cls=EventWriteError,
        )
        logger.debug("Recorded %s event for %s %s/%s", reason, subject.kind, subject.namespace, subject.name)
        return created


def _utc_now() -> datetime:
    return datetime.now(UTC)
