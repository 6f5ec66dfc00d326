from __future__ import annotations

from datetime import UTC, datetime
import logging
from typing import Callable

from .config import TriggerConfig
from .events import EventNotifier, EventWriteError
from .invoker import InvokerResolver
from .k8s import CapabilityProbe, KubernetesClients
from .models import TargetRef, TriggerOutcome
from .naming import generate_session_name
from .session import CustomObjectUpserter, backup_session_mutation, backup_session_resource
from .workloads import TargetExistenceChecker

logger = logging.getLogger(__name__)


class BackupSessionTrigger:
    """Creates a BackupSession for an invoker, or records why it was skipped.

    A run resolves the invoker, checks its declared targets in order and stops
    at the first missing one. With every target present it creates or patches
    ``<invoker name>-<unix seconds>`` in a single upsert; otherwise no session is
    written and a ``BackupSkipped`` event is recorded on the invoker.
    """

    def __init__(
        self,
        *,
        resolver: InvokerResolver,
        checker: TargetExistenceChecker,
        upserter: CustomObjectUpserter,
        notifier: EventNotifier,
        invoker_api_group: str,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.resolver = resolver
        self.checker = checker
        self.upserter = upserter
        self.notifier = notifier
        self.invoker_api_group = invoker_api_group
        self.clock = clock or _utc_now

    def run(self, *, invoker_type: str, invoker_name: str, namespace: str) -> TriggerOutcome:
        invoker = self.resolver.resolve(invoker_type, invoker_name, namespace)

        all_exist, missing = self.checker.all_targets_exist(invoker)
        if not all_exist:
            message = skip_message(missing)
            logger.info(message)
            outcome = TriggerOutcome(status="skipped", message=message, missing_target=missing)
            try:
                self.notifier.record_skip(invoker.object_ref, message)
            except EventWriteError as error:
                raise EventWriteError(str(error), outcome=outcome) from error
            return outcome

        session_name = generate_session_name(invoker.name, self.clock())
        meta = {
            "name": session_name,
            "namespace": invoker.namespace,
            "ownerReferences": [],
        }
        _, created = self.upserter.upsert(
            meta,
            backup_session_mutation(invoker, invoker_api_group=self.invoker_api_group),
        )
        status = "created" if created else "patched"
        return TriggerOutcome(
            status=status,
            session_name=session_name,
            message=f"BackupSession {invoker.namespace}/{session_name} {status} for {invoker.kind} {invoker.name}.",
        )


def skip_message(missing: TargetRef | None) -> str:
    if missing is None:
        return "Skipping creating BackupSession. Reason: a target workload does not exist."
    return (
        "Skipping creating BackupSession. "
        f"Reason: Target workload {missing.kind.lower()}/{missing.name} does not exist."
    )


def build_trigger(
    clients: KubernetesClients,
    config: TriggerConfig,
    *,
    capability_probe: CapabilityProbe | None = None,
) -> BackupSessionTrigger:
    timeout = config.request_timeout_seconds
    return BackupSessionTrigger(
        resolver=InvokerResolver(
            clients.custom_api,
            api_group=config.invoker_api_group,
            api_version=config.invoker_api_version,
            request_timeout_seconds=timeout,
        ),
        checker=TargetExistenceChecker(
            clients,
            capability_probe=capability_probe,
            request_timeout_seconds=timeout,
        ),
        upserter=CustomObjectUpserter(
            clients.custom_api,
            backup_session_resource(config.invoker_api_group, config.invoker_api_version),
            request_timeout_seconds=timeout,
        ),
        notifier=EventNotifier(
            clients.core_api,
            source_component=config.event_source_component,
            request_timeout_seconds=timeout,
        ),
        invoker_api_group=config.invoker_api_group,
    )


def _utc_now() -> datetime:
    return datetime.now(UTC)
