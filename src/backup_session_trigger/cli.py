from __future__ import annotations

import argparse
import logging
from typing import Callable, Sequence

from backup_session_trigger.config import TriggerConfig, resolve_namespace, validate_kubeconfig_file
from backup_session_trigger.events import EventWriteError
from backup_session_trigger.k8s import (
    BackupTriggerError,
    CapabilityProbe,
    ConfigError,
    KubernetesClients,
    load_kubernetes_clients,
)
from backup_session_trigger.models import TriggerOutcome
from backup_session_trigger.trigger import build_trigger

logger = logging.getLogger("backup_session_trigger")

ClientLoader = Callable[..., KubernetesClients]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="create-backupsession",
        description="Create a BackupSession for a backup invoker if all of its targets exist.",
    )
    parser.add_argument(
        "--master",
        default="",
        help="The address of the Kubernetes API server (overrides any value in kubeconfig)",
    )
    parser.add_argument(
        "--kubeconfig",
        default="",
        help="Path to kubeconfig file with authorization information (the master location is set by the master flag).",
    )
    parser.add_argument("--invoker-name", required=True, help="Name of the invoker")
    parser.add_argument("--invoker-type", required=True, help="Type of the backup invoker")
    parser.add_argument(
        "--namespace",
        default=None,
        help="Namespace of the invoker (defaults to POD_NAMESPACE or the service account namespace)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (defaults to BST_LOG_LEVEL or INFO)")
    return parser


def run(
    args: argparse.Namespace,
    config: TriggerConfig,
    *,
    client_loader: ClientLoader = load_kubernetes_clients,
) -> TriggerOutcome:
    if args.kubeconfig and args.kubeconfig.strip():
        kubeconfig_error = validate_kubeconfig_file(args.kubeconfig)
        if kubeconfig_error:
            raise ConfigError(f"Could not get Kubernetes config: {kubeconfig_error}")

    clients = client_loader(master_url=args.master, kubeconfig_path=args.kubeconfig)
    probe = CapabilityProbe(clients, request_timeout_seconds=config.request_timeout_seconds)
    trigger = build_trigger(clients, config, capability_probe=probe)
    return trigger.run(
        invoker_type=args.invoker_type,
        invoker_name=args.invoker_name,
        namespace=resolve_namespace(args.namespace),
    )


def main(argv: Sequence[str] | None = None, *, client_loader: ClientLoader = load_kubernetes_clients) -> int:
    args = build_parser().parse_args(argv)
    config = TriggerConfig()
    logging.basicConfig(
        level=(args.log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        outcome = run(args, config, client_loader=client_loader)
    except EventWriteError as error:
        logger.critical("BackupSession creation was skipped but the skip event was not recorded: %s", error)
        return 1
    except BackupTriggerError as error:
        logger.critical("%s", error)
        return 1

    if not outcome.skipped:
        logger.info(outcome.message)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
