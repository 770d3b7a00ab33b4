"""
:class:`~restore_engine.store.ResourceStore` backed by the Kubernetes API.

Custom resources go through ``CustomObjectsApi``; pods and volume claims
through ``CoreV1Api``. Writes are merge patches so that a stale
resourceVersion on a long-lived in-memory copy never turns into a conflict.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, TypeVar

from kubernetes import client, config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from restore_engine.config import ControllerConfig
from restore_engine.data_models import Backup, Cluster, RestoreRequest
from restore_engine.errors import ConfigError, ResourceNotFoundError, ResourceStoreError
from restore_engine.store import decode_resource

PLURAL_RESTORES = "perconaxtradbclusterrestores"
PLURAL_BACKUPS = "perconaxtradbclusterbackups"
PLURAL_CLUSTERS = "perconaxtradbclusters"

T = TypeVar("T")


def format_selector(selector: Mapping[str, str]) -> str:
    """Render a label selector as ``k1=v1,k2=v2`` (sorted for stable output)."""
    return ",".join(f"{key}={value}" for key, value in sorted(selector.items()))


def _api_call(what: str, call: Callable[[], T]) -> T:
    try:
        return call()
    except ApiException as exc:
        if exc.status == 404:
            raise ResourceNotFoundError(f"{what}: not found") from exc
        raise ResourceStoreError(f"{what}: {exc.status} {exc.reason}") from exc


class KubeResourceStore:
    """
    Resource store talking to a Kubernetes API server.

    Parameters
    ----------
    custom_api:
        ``kubernetes.client.CustomObjectsApi`` (or a compatible object).
    core_api:
        ``kubernetes.client.CoreV1Api`` (or a compatible object).
    group:
        API group of the database custom resources.
    version:
        API version of the database custom resources.
    """

    def __init__(
        self,
        custom_api: Any,
        core_api: Any,
        *,
        group: str,
        version: str,
    ) -> None:
        self._custom = custom_api
        self._core = core_api
        self._group = group
        self._version = version

    @classmethod
    def from_environment(cls, controller_config: ControllerConfig) -> KubeResourceStore:
        """
        Build a store from in-cluster config, falling back to kubeconfig.

        Raises
        ------
        ConfigError
            If neither configuration source can be loaded.
        """
        try:
            k8s_config.load_incluster_config()
        except ConfigException:
            try:
                k8s_config.load_kube_config()
            except (ConfigException, OSError) as exc:
                raise ConfigError(f"Failed to load kubeconfig: {exc}") from exc
        return cls(
            client.CustomObjectsApi(),
            client.CoreV1Api(),
            group=controller_config.api_group,
            version=controller_config.api_version,
        )

    def _get_object(self, plural: str, namespace: str, name: str) -> dict[str, Any]:
        return _api_call(
            f"get {plural} {namespace}/{name}",
            lambda: self._custom.get_namespaced_custom_object(
                self._group, self._version, namespace, plural, name
            ),
        )

    def get_restore(self, namespace: str, name: str) -> RestoreRequest:
        document = self._get_object(PLURAL_RESTORES, namespace, name)
        return decode_resource(RestoreRequest.from_dict, document, what="restore")

    def list_restores(self, namespace: str) -> list[RestoreRequest]:
        listing = _api_call(
            f"list {PLURAL_RESTORES} in {namespace}",
            lambda: self._custom.list_namespaced_custom_object(
                self._group, self._version, namespace, PLURAL_RESTORES
            ),
        )
        return [
            decode_resource(RestoreRequest.from_dict, item, what="restore")
            for item in listing.get("items", [])
        ]

    def update_restore_status(self, request: RestoreRequest) -> None:
        body = {"status": request.status.to_dict()}
        _api_call(
            f"update status of {PLURAL_RESTORES} {request.namespace}/{request.name}",
            lambda: self._custom.patch_namespaced_custom_object_status(
                self._group, self._version, request.namespace, PLURAL_RESTORES, request.name, body
            ),
        )

    def get_cluster(self, namespace: str, name: str) -> Cluster:
        document = self._get_object(PLURAL_CLUSTERS, namespace, name)
        return decode_resource(Cluster.from_dict, document, what="cluster")

    def update_cluster(self, cluster: Cluster) -> None:
        body = {"spec": cluster.to_dict()["spec"]}
        _api_call(
            f"update {PLURAL_CLUSTERS} {cluster.namespace}/{cluster.name}",
            lambda: self._custom.patch_namespaced_custom_object(
                self._group, self._version, cluster.namespace, PLURAL_CLUSTERS, cluster.name, body
            ),
        )

    def get_backup(self, namespace: str, name: str) -> Backup:
        document = self._get_object(PLURAL_BACKUPS, namespace, name)
        return decode_resource(Backup.from_dict, document, what="backup")

    def list_pods(self, namespace: str, selector: Mapping[str, str]) -> list[str]:
        pods = _api_call(
            f"list pods in {namespace}",
            lambda: self._core.list_namespaced_pod(namespace, label_selector=format_selector(selector)),
        )
        return [pod.metadata.name for pod in pods.items]

    def list_pvcs(self, namespace: str, selector: Mapping[str, str]) -> list[str]:
        pvcs = _api_call(
            f"list pvcs in {namespace}",
            lambda: self._core.list_namespaced_persistent_volume_claim(
                namespace, label_selector=format_selector(selector)
            ),
        )
        return [pvc.metadata.name for pvc in pvcs.items]
