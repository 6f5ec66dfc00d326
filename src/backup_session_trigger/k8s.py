from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging
import os
from typing import Callable, TypeVar

from kubernetes import client, config
from kubernetes.client import ApiException

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KubernetesClients:
    api_client: client.ApiClient
    core_api: client.CoreV1Api
    apps_api: client.AppsV1Api
    custom_api: client.CustomObjectsApi
    apis_api: client.ApisApi


class BackupTriggerError(RuntimeError):
    """Base class for failures that abort a backup trigger run."""


class ConfigError(BackupTriggerError):
    """Raised when a Kubernetes client cannot be built from the given credentials."""


class TargetCheckError(BackupTriggerError):
    """Raised when workload or capability lookups fail for reasons other than absence."""


def load_kubernetes_clients(
    *,
    master_url: str | None,
    kubeconfig_path: str | None,
) -> KubernetesClients:
    expanded = _expand_kubeconfig_path(kubeconfig_path)
    master = (master_url or "").strip().rstrip("/") or None
    configuration = client.Configuration()
    try:
        if expanded is None and master is None and _is_incluster_service_account_environment():
            config.load_incluster_config(client_configuration=configuration)
        elif expanded is None and master is not None and not _default_kubeconfig_exists():
            # Only the API server address is known; requests go out unauthenticated.
            pass
        else:
            config.load_kube_config(config_file=expanded, client_configuration=configuration)
    except Exception as error:  # pylint: disable=broad-except
        raise ConfigError(
            _format_config_error(kubeconfig_path=expanded, master_url=master, error=error)
        ) from error

    if master is not None:
        configuration.host = master

    api_client = client.ApiClient(configuration)
    logger.debug("Kubernetes client configured for API server %s", configuration.host)
    return KubernetesClients(
        api_client=api_client,
        core_api=client.CoreV1Api(api_client),
        apps_api=client.AppsV1Api(api_client),
        custom_api=client.CustomObjectsApi(api_client),
        apis_api=client.ApisApi(api_client),
    )


class CapabilityProbe:
    """Answers whether the cluster serves a kind under its preferred group version.

    Each (group version, kind) pair is discovered once and remembered for the
    lifetime of the probe. A discovery failure is logged and answered with
    False, so the workload family is simply never found.
    """

    def __init__(self, clients: KubernetesClients, *, request_timeout_seconds: int = 20) -> None:
        self._clients = clients
        self._request_timeout_seconds = request_timeout_seconds
        self._cache: dict[tuple[str, str], bool] = {}

    def supports(self, group_version: str, kind: str) -> bool:
        key = (group_version, kind)
        if key not in self._cache:
            self._cache[key] = self._discover(group_version, kind)
            logger.debug("Capability %s %s supported: %s", group_version, kind, self._cache[key])
        return self._cache[key]

    def _discover(self, group_version: str, kind: str) -> bool:
        try:
            return self._served(group_version, kind)
        except TargetCheckError as error:
            logger.warning("Treating %s %s as unsupported: %s", group_version, kind, error)
            return False

    def _served(self, group_version: str, kind: str) -> bool:
        group, _, _ = group_version.rpartition("/")
        api_groups = safe_kubernetes_call(
            operation="list API groups for capability discovery",
            hint="Confirm cluster connectivity and that discovery endpoints are readable.",
            func=lambda: self._clients.apis_api.get_api_versions(_request_timeout=self._request_timeout_seconds),
        )

        preferred = None
        for api_group in api_groups.groups or []:
            if api_group.name == group and api_group.preferred_version is not None:
                preferred = api_group.preferred_version.group_version
                break
        if preferred != group_version:
            return False

        resource_list = safe_kubernetes_call(
            operation=f"list resources served by '{group_version}'",
            hint="Confirm discovery endpoints are readable.",
            func=lambda: self._clients.api_client.call_api(
                f"/apis/{group_version}",
                "GET",
                header_params={"Accept": "application/json"},
                response_type="V1APIResourceList",
                auth_settings=["BearerToken"],
                _return_http_data_only=True,
                _request_timeout=self._request_timeout_seconds,
            ),
            none_on_status=(404,),
        )
        if resource_list is None:
            return False
        return any(resource.kind == kind for resource in resource_list.resources or [])


def safe_kubernetes_call(
    *,
    operation: str,
    hint: str,
    func: Callable[[], T],
    error_cls: type[BackupTriggerError] = TargetCheckError,
    none_on_status: tuple[int, ...] = (),
    status_hints: dict[int, str] | None = None,
) -> T | None:
    """Run ``func`` and wrap any failure in ``error_cls``.

    API errors whose status is listed in ``none_on_status`` return None instead,
    so callers can tell an absent object from a failed request.
    """
    try:
        return func()
    except ApiException as error:
        if error.status in none_on_status:
            return None
        raise error_cls(
            format_api_exception_message(
                operation=operation,
                hint=(status_hints or {}).get(error.status, hint),
                error=error,
            )
        ) from error
    except BackupTriggerError:
        raise
    except Exception as error:
        reason = str(error).strip() or error.__class__.__name__
        raise error_cls(f"Kubernetes request failed while trying to {operation}: {reason}. {hint}") from error


def format_api_exception_message(*, operation: str, hint: str, error: ApiException) -> str:
    status = error.status if error.status is not None else "unknown"
    reason = error.reason or "no reason provided"
    return (
        f"Kubernetes request failed while trying to {operation}: "
        f"API status {status} ({reason}). {hint}"
    )


def _is_incluster_service_account_environment() -> bool:
    return bool(os.getenv("KUBERNETES_SERVICE_HOST") and os.getenv("KUBERNETES_SERVICE_PORT"))


def _default_kubeconfig_exists() -> bool:
    locations = config.KUBE_CONFIG_DEFAULT_LOCATION.split(os.pathsep)
    return any(Path(location).expanduser().exists() for location in locations if location)


def _expand_kubeconfig_path(kubeconfig_path: str | None) -> str | None:
    if kubeconfig_path is None:
        return None
    stripped = kubeconfig_path.strip()
    if not stripped:
        return None
    return str(Path(stripped).expanduser())


def _format_config_error(
    *,
    kubeconfig_path: str | None,
    master_url: str | None,
    error: Exception,
) -> str:
    reason = str(error).strip() or error.__class__.__name__
    if kubeconfig_path is None and master_url is None and _is_incluster_service_account_environment():
        return (
            "Could not get Kubernetes config from in-cluster service account credentials: "
            f"{reason}. Ensure the pod has a mounted service account token."
        )

    kubeconfig_source = kubeconfig_path or "default kubeconfig search path"
    master_message = f" with API server override '{master_url}'" if master_url else ""
    return (
        f"Could not get Kubernetes config from '{kubeconfig_source}'{master_message}: {reason}. "
        "Verify the kubeconfig path and the --master address are valid."
    )
