from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

import restorectl.cli as cli_module
from builders import NAMESPACE, backup_doc, cluster_doc, make_store, pitr_cluster_doc, restore_doc
from restore_engine.config import ControllerConfig
from restore_engine.data_models import RestoreState
from restore_engine.store import InMemoryResourceStore, ResourceStore


def _write_manifests(path: Path, *documents: dict[str, Any]) -> Path:
    path.write_text(yaml.safe_dump_all(documents), encoding="utf-8")
    return path


def _use_store(monkeypatch: pytest.MonkeyPatch, store: InMemoryResourceStore) -> None:
    def _fake(_config: ControllerConfig) -> ResourceStore:
        return store

    monkeypatch.setattr(cli_module, "_kube_store", _fake)


def test_check_prints_report_for_valid_manifests(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifests = _write_manifests(tmp_path / "all.yaml", restore_doc(), backup_doc(), cluster_doc())

    rc = cli_module.main(["check", "--namespace", NAMESPACE, "--name", "restore1", "--manifests", str(manifests)])

    out = capsys.readouterr().out
    assert rc == 0
    assert json.loads(out)["backup"] == "backup1"


def test_check_accepts_multiple_manifest_files(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    first = _write_manifests(tmp_path / "restore.yaml", restore_doc())
    second = _write_manifests(tmp_path / "cluster.yaml", backup_doc(), cluster_doc())

    rc = cli_module.main(
        ["check", "--namespace", NAMESPACE, "--name", "restore1", "--manifests", str(first), str(second)]
    )

    assert rc == 0
    assert json.loads(capsys.readouterr().out)["cluster"] == "cluster1"


HAND_WRITTEN_MANIFEST = """\
kind: PerconaXtraDBClusterRestore
metadata:
  name: restore1
  namespace: ns
spec:
  pxcCluster: cluster1
  backupName: backup1
---
kind: PerconaXtraDBClusterBackup
metadata:
  name: backup1
  namespace: ns
spec:
  pxcCluster: cluster1
  storageName: s3-us-west
status:
  state: Succeeded
  destination: s3://operator-testing/backup1
  storageName: s3-us-west
  completed: 2024-01-01T10:00:00Z
  lastscheduled: 2024-01-01T09:00:00Z
---
kind: PerconaXtraDBCluster
metadata:
  name: cluster1
  namespace: ns
spec:
  crVersion: 1.14.0
  pxc:
    size: 3
  backup:
    storages:
      s3-us-west:
        type: s3
"""


def test_check_accepts_unquoted_yaml_timestamps(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifests = tmp_path / "restore.yaml"
    manifests.write_text(HAND_WRITTEN_MANIFEST, encoding="utf-8")

    rc = cli_module.main(["check", "--namespace", NAMESPACE, "--name", "restore1", "--manifests", str(manifests)])

    out = capsys.readouterr().out
    assert rc == 0, out
    assert json.loads(out)["destination"] == "s3://operator-testing/backup1"


def test_check_returns_1_when_backup_not_ready(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifests = _write_manifests(tmp_path / "all.yaml", restore_doc(), backup_doc(state="Running"), cluster_doc())

    rc = cli_module.main(["check", "--namespace", NAMESPACE, "--name", "restore1", "--manifests", str(manifests)])

    out = capsys.readouterr().out
    assert rc == 1
    assert "ERROR:" in out
    assert "didn't finish yet" in out


def test_check_returns_2_for_unreadable_manifest(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    rc = cli_module.main(
        ["check", "--namespace", NAMESPACE, "--name", "restore1", "--manifests", str(tmp_path / "missing.yaml")]
    )

    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out


def test_check_returns_2_for_invalid_yaml(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    bad = tmp_path / "bad.yaml"
    bad.write_text("kind: [unclosed\n", encoding="utf-8")

    rc = cli_module.main(["check", "--namespace", NAMESPACE, "--name", "restore1", "--manifests", str(bad)])

    assert rc == 2
    assert "Invalid YAML" in capsys.readouterr().out


def test_reconcile_runs_restore_to_success(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    store = make_store(restore_doc(), backup_doc(), cluster_doc())
    _use_store(monkeypatch, store)

    rc = cli_module.main(
        [
            "reconcile",
            "--namespace",
            NAMESPACE,
            "--name",
            "restore1",
            "--collaborators",
            "builders:noop_collaborators",
            "--journal-root",
            str(tmp_path),
        ]
    )

    assert rc == 0
    assert "ns/restore1: Succeeded" in capsys.readouterr().out
    assert (tmp_path / NAMESPACE / "restore1" / "execution_journal.jsonl").exists()


def test_reconcile_returns_1_when_restore_fails(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    store = make_store(restore_doc(), cluster_doc())
    _use_store(monkeypatch, store)

    rc = cli_module.main(
        ["reconcile", "--namespace", NAMESPACE, "--name", "restore1", "--collaborators", "builders:noop_collaborators"]
    )

    out = capsys.readouterr().out
    assert rc == 1
    assert "ERROR: get backup" in out
    assert store.status_writes[-1].state == "Failed"


def test_reconcile_returns_2_for_bad_collaborators_spec(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _use_store(monkeypatch, make_store(restore_doc()))

    rc = cli_module.main(
        ["reconcile", "--namespace", NAMESPACE, "--name", "restore1", "--collaborators", "not-a-spec"]
    )

    assert rc == 2
    assert "ERROR:" in capsys.readouterr().out


def test_sweep_processes_only_new_requests(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    store = make_store(
        restore_doc("fresh"),
        restore_doc("old", state="Succeeded"),
        backup_doc(),
        cluster_doc(),
    )
    _use_store(monkeypatch, store)

    rc = cli_module.main(["sweep", "--namespace", NAMESPACE, "--collaborators", "builders:noop_collaborators"])

    out = capsys.readouterr().out
    assert rc == 0
    assert "ns/fresh: done" in out
    assert "old" not in out
    assert {write.name for write in store.status_writes} == {"fresh"}


def test_status_prints_request_state(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    _use_store(monkeypatch, make_store(restore_doc()))

    rc = cli_module.main(["status", "--namespace", NAMESPACE, "--name", "restore1"])

    assert rc == 0
    assert json.loads(capsys.readouterr().out)["state"] == "New"


def test_status_returns_1_for_missing_request(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    _use_store(monkeypatch, make_store())

    rc = cli_module.main(["status", "--namespace", NAMESPACE, "--name", "ghost"])

    assert rc == 1
    assert "ERROR:" in capsys.readouterr().out


def test_sweep_continues_after_checker_error(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    store = make_store(
        restore_doc("a-pitr", pitr={"type": "latest"}),
        restore_doc("b-plain", cluster="cluster2"),
        backup_doc(),
        pitr_cluster_doc(),
        cluster_doc("cluster2"),
    )
    _use_store(monkeypatch, store)

    rc = cli_module.main(
        ["sweep", "--namespace", NAMESPACE, "--collaborators", "builders:failing_checker_collaborators"]
    )

    out = capsys.readouterr().out
    assert rc == 1
    assert "ERROR: ns/a-pitr: binlog gap" in out
    assert "ns/b-plain: done" in out
    assert store.get_restore(NAMESPACE, "a-pitr").status.state is RestoreState.FAILED
    assert store.get_restore(NAMESPACE, "b-plain").status.state is RestoreState.SUCCEEDED


def test_reconcile_returns_1_for_checker_error(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    store = make_store(restore_doc(pitr={"type": "latest"}), backup_doc(), pitr_cluster_doc())
    _use_store(monkeypatch, store)

    rc = cli_module.main(
        [
            "reconcile",
            "--namespace",
            NAMESPACE,
            "--name",
            "restore1",
            "--collaborators",
            "builders:failing_checker_collaborators",
        ]
    )

    assert rc == 1
    assert "ERROR: binlog gap" in capsys.readouterr().out
    assert store.status_writes[-1].state == "Failed"
