"""
Safety gate for point-in-time recovery.

A PITR restore replays binlogs on top of a base backup. It is only consistent
when the binlog collector reports no gaps and the backup's ``PITRReady``
condition is not False. The ``percona.com/unsafe-pitr`` annotation on the
request waives the condition check; the collector check always runs.
"""

from __future__ import annotations

from restore_engine.collaborators import PITRErrorChecker
from restore_engine.data_models import (
    ANNOTATION_UNSAFE_PITR,
    CONDITION_PITR_READY,
    Backup,
    Cluster,
    ConditionStatus,
    RestoreRequest,
    find_condition,
)
from restore_engine.errors import UnsafePITRError

UNSAFE_PITR_MESSAGE = (
    "Backup doesn't guarantee consistent recovery with PITR. "
    f"Annotate PerconaXtraDBClusterRestore with {ANNOTATION_UNSAFE_PITR} to force it."
)


def check_pitr_safety(
    request: RestoreRequest,
    cluster: Cluster,
    backup: Backup,
    checker: PITRErrorChecker,
) -> None:
    """
    Refuse a PITR restore that cannot be consistent, unless explicitly forced.

    Parameters
    ----------
    request:
        Restore request with a PITR target.
    cluster:
        Target cluster (defaults applied).
    backup:
        Resolved backup descriptor.
    checker:
        Cluster-side PITR error check; its errors propagate unchanged.

    Raises
    ------
    UnsafePITRError
        If the backup's PITRReady condition is False and the request does not
        carry the unsafe-PITR annotation.

    Notes
    -----
    A missing condition, or one that is True or Unknown, passes. The
    annotation bypasses only the readiness condition, never the checker.
    """
    checker.check_pitr_errors(cluster)
    check_backup_pitr_ready(request, backup)


def check_backup_pitr_ready(request: RestoreRequest, backup: Backup) -> None:
    """Readiness half of the gate: no cluster access, override honoured."""
    condition = find_condition(backup.status.conditions, CONDITION_PITR_READY)
    if condition is None or condition.status != ConditionStatus.FALSE.value:
        return
    if request.unsafe_pitr:
        return
    raise UnsafePITRError(UNSAFE_PITR_MESSAGE)
