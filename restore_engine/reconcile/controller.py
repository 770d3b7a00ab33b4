"""
Restore reconciler: the state machine driving one restore request.

Stages (each transition is written to the request status before the stage
runs):

    New -> Starting -> Stopping Cluster -> Restoring -> Starting Cluster
        [-> Point-in-time recovering -> Starting Cluster] -> Succeeded | Failed

Once the request has left New it is never processed again. Any error after
the Starting transition ends in Failed with the error text as comments; the
error is then re-raised for the caller. Restore attempts are not resumed
after interruption: a request stuck in an intermediate state stays there.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Mapping

from restore_engine.clock import Clock, SystemClock
from restore_engine.collaborators import Collaborators
from restore_engine.config import ControllerConfig
from restore_engine.data_models import Backup, Cluster, RestoreRequest, RestoreState
from restore_engine.defaults import (
    DEFAULT_CR_VERSION,
    apply_cluster_defaults,
    check_restore_defaults,
    validate_restore,
)
from restore_engine.errors import (
    CollaboratorError,
    RestoreControllerError,
    ResourceNotFoundError,
    ResourceStoreError,
)
from restore_engine.journal import RestoreExecutionJournal
from restore_engine.paths import restore_journal_path
from restore_engine.store import ResourceStore

from .guard import check_exclusive
from .pitr_gate import check_pitr_safety
from .resolver import resolve_backup
from .topology import overridden_topology

logger = logging.getLogger(__name__)

RESTORE_SUCCEEDED_MESSAGE = """You can view xtrabackup log:
$ kubectl logs job/restore-job-{name}-{cluster}
If everything is fine, you can cleanup the job:
$ kubectl delete pxc-restore/{name}
"""


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """
    Outcome handed back to the scheduling layer.

    Attributes
    ----------
    requeue_after:
        Seconds after which the request should be delivered again, or None.
    """

    requeue_after: float | None = None


def restore_succeeded_message(request: RestoreRequest) -> str:
    """Operator follow-up text written as comments on success."""
    return RESTORE_SUCCEEDED_MESSAGE.format(name=request.name, cluster=request.spec.cluster_name)


def _with_context(context: str, exc: RestoreControllerError) -> RestoreControllerError:
    try:
        return type(exc)(f"{context}: {exc}")
    except TypeError:
        # Error types with their own constructor signature are reported as CollaboratorError.
        return CollaboratorError(context, str(exc))


class RestoreReconciler:
    """
    Drives restore requests through their stages.

    Parameters
    ----------
    store:
        Resource store for requests, clusters, backups and pod listings.
    collaborators:
        External operations (quiesce/resume, restore, replay, ...).
    config:
        Controller configuration; only `journal_root` is used here.
    clock:
        Time source for completion timestamps and journal records.
    server_version:
        Version used when defaulting a cluster without crVersion.
    """

    def __init__(
        self,
        store: ResourceStore,
        collaborators: Collaborators,
        *,
        config: ControllerConfig | None = None,
        clock: Clock | None = None,
        server_version: str = DEFAULT_CR_VERSION,
    ) -> None:
        self._store = store
        self._collaborators = collaborators
        self._config = config if config is not None else ControllerConfig()
        self._clock = clock if clock is not None else SystemClock()
        self._server_version = server_version

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        """
        Process one restore request identified by (namespace, name).

        A missing request, or one not in the New state, is a no-op.

        Raises
        ------
        ResourceStoreError
            If the request cannot be read or moved to Starting; no terminal
            status is written in that case.
        RestoreControllerError
            Any failure after Starting, once Failed has been recorded.
        Exception
            Errors raised by the PITR checker, re-raised unchanged once Failed
            has been recorded.
        """
        try:
            request = self._store.get_restore(namespace, name)
        except ResourceNotFoundError:
            return ReconcileResult()

        if request.status.state is not RestoreState.NEW:
            return ReconcileResult()

        journal = self._open_journal(request)
        self._record(
            journal,
            "restore_reconcile_started",
            {
                "cluster": request.spec.cluster_name,
                "backup_name": request.spec.backup_name,
                "inline_source": request.spec.backup_source is not None,
                "pitr": request.spec.pitr.to_dict() if request.spec.pitr is not None else None,
            },
        )
        logger.info("backup restore request %s/%s", namespace, name)

        self._set_status(request, RestoreState.STARTING, "", journal)

        try:
            self._run(request, journal)
        except Exception as exc:
            self._record_failure(request, exc, journal)
            raise

        message = restore_succeeded_message(request)
        self._set_status(request, RestoreState.SUCCEEDED, message, journal)
        self._record(journal, "restore_finished", {"state": RestoreState.SUCCEEDED.value})
        logger.info(message)
        return ReconcileResult()

    def _run(self, request: RestoreRequest, journal: RestoreExecutionJournal | None) -> None:
        collaborators = self._collaborators
        cluster_name = request.spec.cluster_name

        check_exclusive(cluster_name, request.name, self._list_restores(request.namespace))
        check_restore_defaults(request)

        cluster = self._get_cluster(request.namespace, cluster_name)
        original = cluster.deep_copy()
        try:
            apply_cluster_defaults(cluster, self._server_version)
        except RestoreControllerError as exc:
            raise _with_context("wrong cluster options", exc) from exc

        try:
            backup = resolve_backup(request, self._store)
        except RestoreControllerError as exc:
            raise _with_context("get backup", exc) from exc

        if request.spec.pitr is not None:
            check_pitr_safety(request, cluster, backup, collaborators.pitr_checker)

        try:
            validate_restore(request, backup, cluster)
        except RestoreControllerError as exc:
            raise _with_context("failed to validate restore job", exc) from exc

        logger.info("stopping cluster %s", cluster_name)
        self._set_status(request, RestoreState.STOP_CLUSTER, "", journal)
        self._invoke(f"stop cluster {cluster.name}", collaborators.lifecycle.pause, cluster, True)

        logger.info("starting restore of cluster %s from backup %s", cluster_name, backup.metadata.name)
        self._set_status(request, RestoreState.RESTORE, "", journal)
        self._invoke("run restore", collaborators.restore_runner.run_restore, request, backup, cluster)

        if cluster.spec.backup.pitr.enabled:
            self._invalidate_cache(cluster, journal)

        logger.info("starting cluster %s", cluster_name)
        self._set_status(request, RestoreState.START_CLUSTER, "", journal)

        if request.spec.pitr is not None:
            self._replay(request, backup, cluster, journal)
            logger.info("starting cluster %s", cluster_name)
            self._set_status(request, RestoreState.START_CLUSTER, "", journal)

        self._invoke("restart cluster", collaborators.lifecycle.unpause, original)

    def _replay(
        self,
        request: RestoreRequest,
        backup: Backup,
        cluster: Cluster,
        journal: RestoreExecutionJournal | None,
    ) -> None:
        collaborators = self._collaborators
        with overridden_topology(cluster) as snapshot:
            self._record(journal, "restore_topology_overridden", asdict(snapshot))
            self._invoke("restart cluster for pitr", collaborators.lifecycle.unpause, cluster)

            logger.info("point-in-time recovering cluster %s", request.spec.cluster_name)
            self._set_status(request, RestoreState.PITR, "", journal)
            self._invoke("run pitr", collaborators.pitr_runner.run_pitr, request, backup, cluster)

    def _invalidate_cache(self, cluster: Cluster, journal: RestoreExecutionJournal | None) -> None:
        try:
            self._collaborators.cache_invalidator.invalidate(cluster)
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to invalidate binlog collector cache for %s: %s", cluster.name, exc)
            self._record(
                journal,
                "restore_cache_invalidation_failed",
                {"cluster": cluster.name, "error_type": type(exc).__name__, "error": str(exc)},
            )

    def _invoke(self, stage: str, operation: Callable[..., None], *args: Any) -> None:
        try:
            operation(*args)
        except RestoreControllerError as exc:
            raise _with_context(stage, exc) from exc
        except Exception as exc:  # noqa: BLE001
            raise CollaboratorError(stage, str(exc)) from exc

    def _list_restores(self, namespace: str) -> list[RestoreRequest]:
        try:
            return self._store.list_restores(namespace)
        except RestoreControllerError as exc:
            raise ResourceStoreError(f"get restore jobs list: {exc}") from exc

    def _get_cluster(self, namespace: str, name: str) -> Cluster:
        try:
            return self._store.get_cluster(namespace, name)
        except RestoreControllerError as exc:
            raise _with_context(f"get cluster {name}", exc) from exc

    def _set_status(
        self,
        request: RestoreRequest,
        state: RestoreState,
        comments: str,
        journal: RestoreExecutionJournal | None,
    ) -> None:
        previous = request.status.state
        request.status.state = state
        if state is RestoreState.SUCCEEDED:
            request.status.completed_at = self._clock.now()
        request.status.comments = comments

        try:
            self._store.update_restore_status(request)
        except RestoreControllerError as exc:
            raise ResourceStoreError(f"set status: {exc}") from exc

        self._record(
            journal,
            "restore_state_changed",
            {"from": previous.value, "to": state.value},
        )

    def _record_failure(
        self,
        request: RestoreRequest,
        exc: Exception,
        journal: RestoreExecutionJournal | None,
    ) -> None:
        logger.error("restore %s/%s failed: %s", request.namespace, request.name, exc)
        try:
            self._set_status(request, RestoreState.FAILED, str(exc), journal)
        except RestoreControllerError as status_exc:
            # The original error still propagates; the request stays non-terminal.
            logger.error(
                "failed to record Failed status for %s/%s: %s",
                request.namespace,
                request.name,
                status_exc,
            )
        self._record(
            journal,
            "restore_finished",
            {"state": RestoreState.FAILED.value, "error_type": type(exc).__name__, "error": str(exc)},
        )

    def _open_journal(self, request: RestoreRequest) -> RestoreExecutionJournal | None:
        root = self._config.journal_root
        if root is None:
            return None
        path = restore_journal_path(root, request.namespace, request.name)
        try:
            return RestoreExecutionJournal(path, clock=self._clock)
        except OSError as exc:
            logger.warning("restore journal unavailable at %s: %s", path, exc)
            return None

    @staticmethod
    def _record(
        journal: RestoreExecutionJournal | None,
        event: str,
        data: Mapping[str, Any],
    ) -> None:
        # Journal writes never change the outcome of a restore.
        if journal is None:
            return
        try:
            journal.append(event, data)
        except OSError as exc:
            logger.warning("failed to append %s to %s: %s", event, journal.path, exc)
