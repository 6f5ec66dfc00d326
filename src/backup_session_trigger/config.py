from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

import yaml

DEFAULT_NAMESPACE = "default"
SERVICEACCOUNT_NAMESPACE_PATH = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")


@dataclass(frozen=True)
class TriggerConfig:
    invoker_api_group: str = os.getenv("BST_INVOKER_API_GROUP", "stash.appscode.com")
    invoker_api_version: str = os.getenv("BST_INVOKER_API_VERSION", "v1beta1")
    request_timeout_seconds: int = int(os.getenv("BST_REQUEST_TIMEOUT_SECONDS", "20"))
    log_level: str = os.getenv("BST_LOG_LEVEL", "INFO")
    event_source_component: str = os.getenv("BST_EVENT_SOURCE_COMPONENT", "Backup Triggering CronJob")


def resolve_namespace(
    explicit: str | None = None,
    *,
    serviceaccount_namespace_path: Path = SERVICEACCOUNT_NAMESPACE_PATH,
) -> str:
    if explicit and explicit.strip():
        return explicit.strip()

    from_env = os.getenv("POD_NAMESPACE", "").strip()
    if from_env:
        return from_env

    try:
        from_file = serviceaccount_namespace_path.read_text(encoding="utf-8").strip()
    except OSError:
        from_file = ""
    return from_file or DEFAULT_NAMESPACE


def validate_kubeconfig_file(kubeconfig_path: str) -> str | None:
    expanded_path = Path(kubeconfig_path.strip()).expanduser()
    if not expanded_path.is_file():
        return f"Kubeconfig file '{expanded_path}' does not exist."

    try:
        kubeconfig_content = expanded_path.read_text(encoding="utf-8")
    except OSError as error:
        return f"Unable to read kubeconfig path {expanded_path}: {error}"

    source_label = f"Kubeconfig file '{expanded_path}'"
    try:
        parsed = yaml.safe_load(kubeconfig_content)
    except yaml.YAMLError as error:
        return f"{source_label} must be valid YAML: {error.__class__.__name__}."

    if not isinstance(parsed, dict):
        return f"{source_label} must be a YAML mapping."

    required_fields = ("apiVersion", "clusters", "contexts", "users")
    missing_fields = [field for field in required_fields if field not in parsed]
    if missing_fields:
        missing_fields_csv = ", ".join(missing_fields)
        return f"{source_label} is missing required field(s): {missing_fields_csv}."

    for list_field in ("clusters", "contexts", "users"):
        values = parsed.get(list_field)
        if not isinstance(values, list) or not values:
            return f"{source_label} must include at least one '{list_field}' entry."

    return None
