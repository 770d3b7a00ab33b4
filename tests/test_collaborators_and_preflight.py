from __future__ import annotations

import pytest

from builders import (
    NAMESPACE,
    RecordingCollaborators,
    backup_doc,
    cluster_doc,
    make_store,
    pitr_cluster_doc,
    restore_doc,
)
from restore_engine.collaborators import Collaborators, load_collaborators
from restore_engine.config import ControllerConfig
from restore_engine.errors import (
    BackupNotReadyError,
    ConfigError,
    InvalidRestoreError,
    RestoreConflictError,
    UnsafePITRError,
)
from restore_engine.reconcile.preflight import run_preflight


def test_load_collaborators_calls_factory_with_store() -> None:
    store = make_store()

    bundle = load_collaborators("builders:noop_collaborators", store, ControllerConfig())

    assert isinstance(bundle, Collaborators)
    assert isinstance(bundle.lifecycle, RecordingCollaborators)


@pytest.mark.parametrize(
    ("target", "message"),
    [
        ("builders", "must look like"),
        (":factory", "must look like"),
        ("no_such_module_xyz:factory", "Cannot import"),
        ("builders:NAMESPACE", "is not callable"),
        ("builders:not_a_factory", "expected Collaborators"),
    ],
)
def test_load_collaborators_rejects_bad_targets(target: str, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        load_collaborators(target, make_store(), ControllerConfig())


def test_preflight_reports_resolved_restore() -> None:
    store = make_store(restore_doc(pitr={"type": "latest"}), backup_doc(), pitr_cluster_doc())

    report = run_preflight(store, NAMESPACE, "restore1")

    assert report.to_dict() == {
        "namespace": NAMESPACE,
        "name": "restore1",
        "cluster": "cluster1",
        "backup": "backup1",
        "destination": "s3://operator-testing/backup1",
        "pitr": True,
        "unsafe_pitr": False,
    }
    assert store.status_writes == []
    assert store.cluster_writes == []


def test_preflight_surfaces_first_failing_check() -> None:
    conflict = make_store(
        restore_doc("restore1"), restore_doc("other", state="Restoring"), backup_doc(), cluster_doc()
    )
    with pytest.raises(RestoreConflictError):
        run_preflight(conflict, NAMESPACE, "restore1")

    not_ready = make_store(restore_doc(), backup_doc(state="Running"), cluster_doc())
    with pytest.raises(BackupNotReadyError):
        run_preflight(not_ready, NAMESPACE, "restore1")

    unsafe = make_store(
        restore_doc(pitr={"type": "latest"}),
        backup_doc(conditions=[{"type": "PITRReady", "status": "False"}]),
        pitr_cluster_doc(),
    )
    with pytest.raises(UnsafePITRError):
        run_preflight(unsafe, NAMESPACE, "restore1")

    no_pitr_storage = make_store(restore_doc(pitr={"type": "latest"}), backup_doc(), cluster_doc())
    with pytest.raises(InvalidRestoreError):
        run_preflight(no_pitr_storage, NAMESPACE, "restore1")


def test_preflight_ignores_request_state() -> None:
    store = make_store(restore_doc(state="Succeeded"), backup_doc(), cluster_doc())

    assert run_preflight(store, NAMESPACE, "restore1").backup == "backup1"
