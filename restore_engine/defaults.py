"""
Defaulting and admission checks for the restore triple.

- `check_restore_defaults` validates a restore request on its own.
- `apply_cluster_defaults` fills cluster defaults, version-aware.
- `validate_restore` cross-checks request, backup and cluster.
"""

from __future__ import annotations

from datetime import datetime

from restore_engine.data_models import Backup, Cluster, PITRType, RestoreRequest
from restore_engine.errors import InvalidClusterError, InvalidRestoreError

PITR_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_CR_VERSION = "1.14.0"
DEFAULT_PXC_SIZE = 3
DEFAULT_PROXY_SIZE = 2
DEFAULT_GRACE_PERIOD_SECONDS = 600

# crVersion from which size checks are enforced unless unsafe flags allow them.
UNSAFE_FLAGS_VERSION = (1, 10, 0)


def parse_version(value: str) -> tuple[int, ...]:
    """
    Parse a dotted numeric version ("1.14.0") into a comparable tuple.

    Raises
    ------
    ValueError
        If a component is not an integer.
    """
    text = value.strip().lstrip("v")
    parts = text.split("-", 1)[0].split(".")
    return tuple(int(part) for part in parts if part != "")


def check_restore_defaults(request: RestoreRequest) -> None:
    """
    Validate a restore request in isolation.

    Raises
    ------
    InvalidRestoreError
        If the cluster name is missing, the backup reference is missing or
        ambiguous, or the PITR target is malformed.
    """
    spec = request.spec
    if not spec.cluster_name:
        raise InvalidRestoreError("pxcCluster can't be empty")

    if not spec.backup_name and spec.backup_source is None:
        raise InvalidRestoreError("backupName and backupSource can't be empty simultaneously")
    if spec.backup_name and spec.backup_source is not None:
        raise InvalidRestoreError("backupName and backupSource can't be specified simultaneously")
    if spec.backup_source is not None and not spec.backup_source.destination:
        raise InvalidRestoreError("backupSource.destination can't be empty")

    pitr = spec.pitr
    if pitr is None:
        return

    try:
        pitr_type = PITRType(pitr.type)
    except ValueError as exc:
        allowed = ", ".join(t.value for t in PITRType)
        raise InvalidRestoreError(f"unknown pitr.type {pitr.type!r}, expected one of: {allowed}") from exc

    if pitr_type is PITRType.DATE:
        if not pitr.date:
            raise InvalidRestoreError("pitr.date is required for pitr.type 'date'")
        try:
            datetime.strptime(pitr.date, PITR_DATE_FORMAT)
        except ValueError as exc:
            raise InvalidRestoreError(
                f"pitr.date {pitr.date!r} must match 'YYYY-MM-DD HH:MM:SS'"
            ) from exc
    elif pitr_type is PITRType.GTID and not pitr.gtid:
        raise InvalidRestoreError("pitr.gtid is required for pitr.type 'gtid'")


def apply_cluster_defaults(cluster: Cluster, server_version: str) -> None:
    """
    Fill cluster defaults and enforce topology admission rules.

    Parameters
    ----------
    cluster:
        Cluster to default in place.
    server_version:
        Controller version; used as crVersion when the cluster has none.

    Raises
    ------
    InvalidClusterError
        If the crVersion cannot be parsed or the topology is not admissible.
    """
    spec = cluster.spec
    if not spec.cr_version:
        spec.cr_version = server_version

    try:
        version = parse_version(spec.cr_version)
    except ValueError as exc:
        raise InvalidClusterError(f"invalid crVersion {spec.cr_version!r}") from exc

    if spec.pxc.size <= 0:
        spec.pxc.size = DEFAULT_PXC_SIZE
    if spec.pxc.grace_period_seconds is None:
        spec.pxc.grace_period_seconds = DEFAULT_GRACE_PERIOD_SECONDS

    haproxy_on = spec.haproxy is not None and spec.haproxy.enabled
    proxysql_on = spec.proxysql is not None and spec.proxysql.enabled
    if haproxy_on and proxysql_on:
        raise InvalidClusterError("haproxy and proxysql can't be enabled at the same time")

    for proxy in (spec.haproxy, spec.proxysql):
        if proxy is not None and proxy.enabled and proxy.size <= 0:
            proxy.size = DEFAULT_PROXY_SIZE

    if version < UNSAFE_FLAGS_VERSION:
        return

    if not spec.unsafe.pxc_size and (spec.pxc.size < 3 or spec.pxc.size % 2 == 0):
        raise InvalidClusterError(
            f"pxc size {spec.pxc.size} is unsafe: use an odd size of at least 3 or set unsafeFlags.pxcSize"
        )
    for label, proxy in (("haproxy", spec.haproxy), ("proxysql", spec.proxysql)):
        if proxy is not None and proxy.enabled and proxy.size < 2 and not spec.unsafe.proxy_size:
            raise InvalidClusterError(
                f"{label} size {proxy.size} is unsafe: use at least 2 or set unsafeFlags.proxySize"
            )


def validate_restore(request: RestoreRequest, backup: Backup, cluster: Cluster) -> None:
    """
    Check that `backup` can be restored into `cluster` as `request` asks.

    Raises
    ------
    InvalidRestoreError
        If the backup has no destination, its storage is not defined on the
        cluster, or PITR is requested without a PITR storage on the cluster.
    """
    if not backup.status.destination:
        raise InvalidRestoreError(f"backup {backup.metadata.name} has no destination")

    storages = cluster.spec.backup.storages
    storage_name = backup.status.storage_name or backup.spec.storage_name
    if storage_name and storage_name not in storages:
        raise InvalidRestoreError(
            f"storage {storage_name} is not defined in cluster {cluster.name}"
        )

    if request.spec.pitr is None:
        return

    pitr_storage = cluster.spec.backup.pitr.storage_name
    if not pitr_storage:
        raise InvalidRestoreError(f"PITR storage is not configured for cluster {cluster.name}")
    if pitr_storage not in storages:
        raise InvalidRestoreError(
            f"PITR storage {pitr_storage} is not defined in cluster {cluster.name}"
        )
