from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from kubernetes.client.rest import ApiException

from builders import backup_doc, cluster_doc, restore_doc
from restore_engine.data_models import RestoreState
from restore_engine.errors import ResourceNotFoundError, ResourceStoreError
from restore_engine.kube_store import KubeResourceStore, format_selector


class _FakeCustomApi:
    def __init__(self, objects: dict[tuple[str, str, str], dict[str, Any]]) -> None:
        self.objects = objects
        self.patches: list[tuple[str, str, str, str, dict[str, Any]]] = []
        self.fail_with: ApiException | None = None

    def get_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str
    ) -> dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        try:
            return self.objects[(plural, namespace, name)]
        except KeyError:
            raise ApiException(status=404, reason="Not Found") from None

    def list_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str
    ) -> dict[str, Any]:
        items = [doc for (p, ns, _n), doc in self.objects.items() if p == plural and ns == namespace]
        return {"items": items}

    def patch_namespaced_custom_object_status(
        self, group: str, version: str, namespace: str, plural: str, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        self.patches.append(("status", plural, namespace, name, body))
        return body

    def patch_namespaced_custom_object(
        self, group: str, version: str, namespace: str, plural: str, name: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        self.patches.append(("spec", plural, namespace, name, body))
        return body


class _FakeCoreApi:
    def __init__(self) -> None:
        self.selectors: list[str] = []

    def _listing(self, *names: str) -> SimpleNamespace:
        return SimpleNamespace(items=[SimpleNamespace(metadata=SimpleNamespace(name=n)) for n in names])

    def list_namespaced_pod(self, namespace: str, label_selector: str = "") -> SimpleNamespace:
        self.selectors.append(label_selector)
        return self._listing("cluster1-pxc-0", "cluster1-pxc-1")

    def list_namespaced_persistent_volume_claim(self, namespace: str, label_selector: str = "") -> SimpleNamespace:
        self.selectors.append(label_selector)
        return self._listing("datadir-cluster1-pxc-0")


def _store() -> tuple[KubeResourceStore, _FakeCustomApi, _FakeCoreApi]:
    custom = _FakeCustomApi(
        {
            ("perconaxtradbclusterrestores", "ns", "restore1"): restore_doc(),
            ("perconaxtradbclusterbackups", "ns", "backup1"): backup_doc(),
            ("perconaxtradbclusters", "ns", "cluster1"): cluster_doc(),
        }
    )
    core = _FakeCoreApi()
    return KubeResourceStore(custom, core, group="pxc.percona.com", version="v1"), custom, core


def test_reads_decode_custom_objects() -> None:
    store, _custom, _core = _store()

    assert store.get_restore("ns", "restore1").spec.backup_name == "backup1"
    assert store.get_backup("ns", "backup1").status.succeeded
    assert store.get_cluster("ns", "cluster1").spec.pxc.size == 3
    assert [r.name for r in store.list_restores("ns")] == ["restore1"]


def test_not_found_maps_to_domain_error() -> None:
    store, _custom, _core = _store()

    with pytest.raises(ResourceNotFoundError):
        store.get_backup("ns", "missing")


def test_other_api_errors_map_to_store_error() -> None:
    store, custom, _core = _store()
    custom.fail_with = ApiException(status=500, reason="Internal Server Error")

    with pytest.raises(ResourceStoreError, match="500 Internal Server Error"):
        store.get_cluster("ns", "cluster1")


def test_status_update_patches_status_subresource() -> None:
    store, custom, _core = _store()
    request = store.get_restore("ns", "restore1")
    request.status.state = RestoreState.STARTING

    store.update_restore_status(request)

    kind, plural, namespace, name, body = custom.patches[-1]
    assert (kind, plural, namespace, name) == ("status", "perconaxtradbclusterrestores", "ns", "restore1")
    assert body == {"status": {"state": "Starting", "comments": ""}}


def test_cluster_update_patches_spec_only() -> None:
    store, custom, _core = _store()
    cluster = store.get_cluster("ns", "cluster1")
    cluster.spec.pause = True

    store.update_cluster(cluster)

    kind, _plural, _ns, name, body = custom.patches[-1]
    assert (kind, name) == ("spec", "cluster1")
    assert set(body) == {"spec"}
    assert body["spec"]["pause"] is True
    assert body["spec"]["secretsName"] == "cluster1-secrets"


def test_pod_and_pvc_listings_use_label_selector() -> None:
    store, _custom, core = _store()

    pods = store.list_pods("ns", {"b": "2", "a": "1"})
    pvcs = store.list_pvcs("ns", {"app.kubernetes.io/instance": "cluster1"})

    assert pods == ["cluster1-pxc-0", "cluster1-pxc-1"]
    assert pvcs == ["datadir-cluster1-pxc-0"]
    assert core.selectors == ["a=1,b=2", "app.kubernetes.io/instance=cluster1"]


def test_format_selector_empty() -> None:
    assert format_selector({}) == ""
