"""Backup resolution for restore requests."""

from __future__ import annotations

from restore_engine.data_models import Backup, BackupSpec, ObjectMeta, RestoreRequest
from restore_engine.errors import BackupNotFoundError, BackupNotReadyError, ResourceNotFoundError
from restore_engine.store import ResourceStore


def backup_from_source(request: RestoreRequest) -> Backup:
    """
    Synthesize a backup descriptor from the request's inline backup source.

    The descriptor carries the request's identity and is always Succeeded;
    completion and schedule times are cleared because no backup run exists.
    """
    source = request.spec.backup_source
    if source is None:
        raise ValueError(f"restore {request.name} has no backupSource")
    return Backup(
        metadata=ObjectMeta(name=request.name, namespace=request.namespace),
        spec=BackupSpec(cluster_name=request.spec.cluster_name, storage_name=source.storage_name),
        status=source.as_succeeded(),
    )


def resolve_backup(request: RestoreRequest, store: ResourceStore) -> Backup:
    """
    Produce the backup descriptor a restore request refers to.

    Parameters
    ----------
    request:
        Restore request carrying either `backup_source` or `backup_name`.
    store:
        Store used to read named backups. Not touched for inline sources.

    Returns
    -------
    Backup
        A Succeeded backup descriptor.

    Raises
    ------
    BackupNotFoundError
        If the named backup does not exist.
    BackupNotReadyError
        If the named backup is not Succeeded.
    ResourceStoreError
        If the backup cannot be read for another reason.
    """
    if request.spec.backup_source is not None:
        return backup_from_source(request)

    name = request.spec.backup_name
    try:
        backup = store.get_backup(request.namespace, name)
    except ResourceNotFoundError as exc:
        raise BackupNotFoundError(f"get backup {name}: {exc}") from exc

    if not backup.status.succeeded:
        raise BackupNotReadyError(
            f"backup {backup.metadata.name} didn't finish yet, current state: {backup.status.state or 'New'}"
        )
    return backup
