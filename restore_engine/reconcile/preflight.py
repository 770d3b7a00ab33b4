"""
Read-only preflight for a restore request.

Runs the checks the reconciler performs before it touches the cluster,
without writing status and without calling external collaborators. The
cluster-side PITR error check needs a live collaborator and is therefore not
part of the preflight; only the backup readiness half of the PITR gate runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from restore_engine.defaults import (
    DEFAULT_CR_VERSION,
    apply_cluster_defaults,
    check_restore_defaults,
    validate_restore,
)
from restore_engine.store import ResourceStore

from .guard import check_exclusive
from .pitr_gate import check_backup_pitr_ready
from .resolver import resolve_backup


@dataclass(frozen=True, slots=True)
class PreflightReport:
    """
    Summary of a successful preflight.

    Attributes
    ----------
    namespace:
        Namespace of the request.
    name:
        Name of the request.
    cluster:
        Target cluster name.
    backup:
        Name of the resolved backup descriptor.
    destination:
        Backup destination that would be restored.
    pitr:
        True when the request has a PITR target.
    unsafe_pitr:
        True when the unsafe-PITR override annotation is present.
    """

    namespace: str
    name: str
    cluster: str
    backup: str
    destination: str
    pitr: bool
    unsafe_pitr: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable payload."""
        return {
            "namespace": self.namespace,
            "name": self.name,
            "cluster": self.cluster,
            "backup": self.backup,
            "destination": self.destination,
            "pitr": self.pitr,
            "unsafe_pitr": self.unsafe_pitr,
        }


def run_preflight(
    store: ResourceStore,
    namespace: str,
    name: str,
    *,
    server_version: str = DEFAULT_CR_VERSION,
) -> PreflightReport:
    """
    Check that a restore request would pass every pre-quiesce stage.

    The request state is not consulted: a request that already ran can still
    be checked.

    Raises
    ------
    RestoreControllerError
        The first failing check, with the same error type the reconciler
        would record.
    """
    request = store.get_restore(namespace, name)
    cluster_name = request.spec.cluster_name

    check_exclusive(cluster_name, request.name, store.list_restores(namespace))
    check_restore_defaults(request)

    cluster = store.get_cluster(namespace, cluster_name)
    apply_cluster_defaults(cluster, server_version)

    backup = resolve_backup(request, store)
    if request.spec.pitr is not None:
        check_backup_pitr_ready(request, backup)
    validate_restore(request, backup, cluster)

    return PreflightReport(
        namespace=namespace,
        name=name,
        cluster=cluster_name,
        backup=backup.metadata.name,
        destination=backup.status.destination,
        pitr=request.spec.pitr is not None,
        unsafe_pitr=request.unsafe_pitr,
    )
