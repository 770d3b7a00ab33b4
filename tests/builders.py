from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from restore_engine.collaborators import Collaborators
from restore_engine.config import ControllerConfig
from restore_engine.data_models import Backup, Cluster, RestoreRequest
from restore_engine.store import (
    KIND_BACKUP,
    KIND_CLUSTER,
    KIND_RESTORE,
    InMemoryResourceStore,
    ResourceStore,
)

NAMESPACE = "ns"
STORAGE = "s3-us-west"
DESTINATION = "s3://operator-testing/backup1"


def restore_doc(
    name: str = "restore1",
    *,
    cluster: str = "cluster1",
    backup_name: str = "backup1",
    state: str = "",
    source: dict[str, Any] | None = None,
    pitr: dict[str, Any] | None = None,
    annotations: dict[str, str] | None = None,
) -> dict[str, Any]:
    spec: dict[str, Any] = {"pxcCluster": cluster}
    if backup_name:
        spec["backupName"] = backup_name
    if source is not None:
        spec["backupSource"] = source
    if pitr is not None:
        spec["pitr"] = pitr
    metadata: dict[str, Any] = {"name": name, "namespace": NAMESPACE}
    if annotations:
        metadata["annotations"] = annotations
    doc: dict[str, Any] = {"kind": KIND_RESTORE, "metadata": metadata, "spec": spec}
    if state:
        doc["status"] = {"state": state}
    return doc


def backup_doc(
    name: str = "backup1",
    *,
    cluster: str = "cluster1",
    state: str = "Succeeded",
    destination: str = DESTINATION,
    storage: str = STORAGE,
    conditions: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    status: dict[str, Any] = {
        "state": state,
        "destination": destination,
        "storageName": storage,
        "completed": "2024-01-01T10:00:00Z",
    }
    if conditions is not None:
        status["conditions"] = conditions
    return {
        "kind": KIND_BACKUP,
        "metadata": {"name": name, "namespace": NAMESPACE},
        "spec": {"pxcCluster": cluster, "storageName": storage},
        "status": status,
    }


def cluster_doc(
    name: str = "cluster1",
    *,
    size: int = 3,
    haproxy: dict[str, Any] | None = None,
    proxysql: dict[str, Any] | None = None,
    pitr_enabled: bool = False,
    pitr_storage: str = "",
    cr_version: str = "1.14.0",
) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "crVersion": cr_version,
        "secretsName": "cluster1-secrets",
        "pxc": {"size": size, "image": "percona/percona-xtradb-cluster:8.0"},
        "backup": {
            "storages": {STORAGE: {"type": "s3", "s3": {"bucket": "operator-testing"}}},
            "pitr": {"enabled": pitr_enabled, "storageName": pitr_storage},
        },
    }
    if haproxy is not None:
        spec["haproxy"] = haproxy
    if proxysql is not None:
        spec["proxysql"] = proxysql
    return {"kind": KIND_CLUSTER, "metadata": {"name": name, "namespace": NAMESPACE}, "spec": spec}


def pitr_cluster_doc(**kwargs: Any) -> dict[str, Any]:
    kwargs.setdefault("haproxy", {"enabled": True, "size": 3})
    return cluster_doc(pitr_enabled=True, pitr_storage=STORAGE, **kwargs)


def make_store(*documents: dict[str, Any]) -> InMemoryResourceStore:
    return InMemoryResourceStore.from_documents(documents)


def topology_of(cluster: Cluster) -> dict[str, Any]:
    spec = cluster.spec
    return {
        "pxc": spec.pxc.size,
        "haproxy": spec.haproxy.size if spec.haproxy is not None else None,
        "proxysql": spec.proxysql.size if spec.proxysql is not None else None,
        "unsafe_pxc": spec.unsafe.pxc_size,
        "unsafe_proxy": spec.unsafe.proxy_size,
    }


@dataclass
class RecordingCollaborators:
    """
    Collaborator fakes that record every call into a shared event list.

    Set `fail_on` to an operation name ("pause", "unpause", "run_restore",
    "run_pitr", "check_pitr_errors", "invalidate") to make it raise `error`.
    """

    events: list[tuple[Any, ...]] = field(default_factory=list)
    fail_on: str | None = None
    error: Exception = field(default_factory=lambda: RuntimeError("boom"))

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise self.error

    def pause(self, cluster: Cluster, wait_for_shutdown: bool) -> None:
        self.events.append(("pause", cluster.name, wait_for_shutdown))
        self._maybe_fail("pause")

    def unpause(self, cluster: Cluster) -> None:
        self.events.append(("unpause", topology_of(cluster)))
        self._maybe_fail("unpause")

    def check_pitr_errors(self, cluster: Cluster) -> None:
        self.events.append(("check_pitr_errors", cluster.name))
        self._maybe_fail("check_pitr_errors")

    def run_restore(self, request: RestoreRequest, backup: Backup, cluster: Cluster) -> None:
        self.events.append(("run_restore", request.name, backup.metadata.name))
        self._maybe_fail("run_restore")

    def run_pitr(self, request: RestoreRequest, backup: Backup, cluster: Cluster) -> None:
        self.events.append(("run_pitr", request.name, topology_of(cluster)))
        self._maybe_fail("run_pitr")

    def invalidate(self, cluster: Cluster) -> None:
        self.events.append(("invalidate", cluster.name))
        self._maybe_fail("invalidate")

    def bundle(self) -> Collaborators:
        return Collaborators(
            lifecycle=self,
            pitr_checker=self,
            restore_runner=self,
            pitr_runner=self,
            cache_invalidator=self,
        )

    def names(self) -> list[str]:
        return [event[0] for event in self.events]


def noop_collaborators(store: ResourceStore, config: ControllerConfig) -> Collaborators:
    """Collaborators factory used by CLI tests (``builders:noop_collaborators``)."""
    return RecordingCollaborators().bundle()


def not_a_factory(store: ResourceStore, config: ControllerConfig) -> str:
    return "nope"


def failing_checker_collaborators(store: ResourceStore, config: ControllerConfig) -> Collaborators:
    """Collaborators whose PITR checker raises a plain ``RuntimeError``."""
    return RecordingCollaborators(fail_on="check_pitr_errors", error=RuntimeError("binlog gap")).bundle()
