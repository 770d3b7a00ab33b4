"""
Resource store protocol and an in-memory implementation.

The reconciler talks to the cluster's API server only through
:class:`ResourceStore`. Objects returned by a store are private copies: the
caller may mutate them freely, and nothing reaches the store until an explicit
update call.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Protocol, TypeVar

from restore_engine.data_models import Backup, Cluster, RestoreRequest
from restore_engine.errors import ResourceNotFoundError, ResourceStoreError

KIND_RESTORE = "PerconaXtraDBClusterRestore"
KIND_BACKUP = "PerconaXtraDBClusterBackup"
KIND_CLUSTER = "PerconaXtraDBCluster"
KIND_POD = "Pod"
KIND_PVC = "PersistentVolumeClaim"

T = TypeVar("T")


class ResourceStore(Protocol):
    """Read/write access to the resources a restore touches."""

    def get_restore(self, namespace: str, name: str) -> RestoreRequest:
        """
        Return a restore request.

        Raises
        ------
        ResourceNotFoundError
            If the request does not exist.
        ResourceStoreError
            If the request cannot be read.
        """
        raise NotImplementedError

    def list_restores(self, namespace: str) -> list[RestoreRequest]:
        """Return every restore request in a namespace."""
        raise NotImplementedError

    def update_restore_status(self, request: RestoreRequest) -> None:
        """Persist the status subresource of a restore request."""
        raise NotImplementedError

    def get_cluster(self, namespace: str, name: str) -> Cluster:
        """Return a cluster resource."""
        raise NotImplementedError

    def update_cluster(self, cluster: Cluster) -> None:
        """Persist a cluster resource (spec and metadata)."""
        raise NotImplementedError

    def get_backup(self, namespace: str, name: str) -> Backup:
        """Return a backup resource."""
        raise NotImplementedError

    def list_pods(self, namespace: str, selector: Mapping[str, str]) -> list[str]:
        """Return names of pods in a namespace matching every selector label."""
        raise NotImplementedError

    def list_pvcs(self, namespace: str, selector: Mapping[str, str]) -> list[str]:
        """Return names of volume claims in a namespace matching every selector label."""
        raise NotImplementedError


def _matches(labels: Mapping[str, str], selector: Mapping[str, str]) -> bool:
    return all(labels.get(key) == value for key, value in selector.items())


def decode_resource(factory: Callable[[Mapping[str, Any]], T], document: Mapping[str, Any], *, what: str) -> T:
    """
    Decode a resource document, mapping malformed content to a store error.

    Raises
    ------
    ResourceStoreError
        If the document violates the model's invariants.
    """
    try:
        return factory(document)
    except (ValueError, TypeError) as exc:
        raise ResourceStoreError(f"Malformed {what}: {exc}") from exc


@dataclass(frozen=True, slots=True)
class StatusWrite:
    """One recorded status update (in-memory store audit trail)."""

    namespace: str
    name: str
    state: str
    comments: str


@dataclass
class InMemoryResourceStore:
    """
    Dictionary-backed :class:`ResourceStore`.

    Documents are stored in wire format and decoded on every read, so callers
    never share state with the store. Every status and cluster write is also
    appended to an audit trail (`status_writes`, `cluster_writes`).
    """

    _objects: dict[tuple[str, str, str], dict[str, Any]] = field(default_factory=dict)
    _labelled: dict[tuple[str, str, str], dict[str, str]] = field(default_factory=dict)
    status_writes: list[StatusWrite] = field(default_factory=list)
    cluster_writes: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_documents(cls, documents: Iterable[Mapping[str, Any]]) -> InMemoryResourceStore:
        """
        Build a store from resource documents (e.g. parsed YAML manifests).

        Raises
        ------
        ResourceStoreError
            If a document has an unsupported kind or lacks a name.
        """
        store = cls()
        for document in documents:
            store.put(document)
        return store

    def put(self, document: Mapping[str, Any]) -> None:
        """Insert or replace a resource document, dispatching on its kind."""
        kind = str(document.get("kind") or "")
        metadata = document.get("metadata") or {}
        name = str(metadata.get("name") or "")
        namespace = str(metadata.get("namespace") or "")
        if not name:
            raise ResourceStoreError(f"{kind or 'resource'} document has no metadata.name")

        if kind in (KIND_RESTORE, KIND_BACKUP, KIND_CLUSTER):
            self._objects[(kind, namespace, name)] = copy.deepcopy(dict(document))
        elif kind in (KIND_POD, KIND_PVC):
            labels = {str(k): str(v) for k, v in (metadata.get("labels") or {}).items()}
            self._labelled[(kind, namespace, name)] = labels
        else:
            raise ResourceStoreError(f"Unsupported resource kind: {kind!r}")

    def add_pod(self, namespace: str, name: str, labels: Mapping[str, str]) -> None:
        self._labelled[(KIND_POD, namespace, name)] = dict(labels)

    def add_pvc(self, namespace: str, name: str, labels: Mapping[str, str]) -> None:
        self._labelled[(KIND_PVC, namespace, name)] = dict(labels)

    def remove_pods(self, namespace: str, selector: Mapping[str, str]) -> int:
        """Delete matching pods; return how many were removed."""
        doomed = [
            key
            for key, labels in self._labelled.items()
            if key[0] == KIND_POD and key[1] == namespace and _matches(labels, selector)
        ]
        for key in doomed:
            del self._labelled[key]
        return len(doomed)

    def _get(self, kind: str, namespace: str, name: str) -> dict[str, Any]:
        document = self._objects.get((kind, namespace, name))
        if document is None:
            raise ResourceNotFoundError(f"{kind} {namespace}/{name} not found")
        return copy.deepcopy(document)

    def get_restore(self, namespace: str, name: str) -> RestoreRequest:
        return decode_resource(RestoreRequest.from_dict, self._get(KIND_RESTORE, namespace, name), what="restore")

    def list_restores(self, namespace: str) -> list[RestoreRequest]:
        return [
            decode_resource(RestoreRequest.from_dict, copy.deepcopy(document), what="restore")
            for (kind, ns, _name), document in sorted(self._objects.items())
            if kind == KIND_RESTORE and ns == namespace
        ]

    def update_restore_status(self, request: RestoreRequest) -> None:
        key = (KIND_RESTORE, request.namespace, request.name)
        document = self._objects.get(key)
        if document is None:
            raise ResourceNotFoundError(f"{KIND_RESTORE} {request.namespace}/{request.name} not found")
        document["status"] = request.status.to_dict()
        self.status_writes.append(
            StatusWrite(
                namespace=request.namespace,
                name=request.name,
                state=request.status.state.value,
                comments=request.status.comments,
            )
        )

    def get_cluster(self, namespace: str, name: str) -> Cluster:
        return decode_resource(Cluster.from_dict, self._get(KIND_CLUSTER, namespace, name), what="cluster")

    def update_cluster(self, cluster: Cluster) -> None:
        key = (KIND_CLUSTER, cluster.namespace, cluster.name)
        if key not in self._objects:
            raise ResourceNotFoundError(f"{KIND_CLUSTER} {cluster.namespace}/{cluster.name} not found")
        payload = {"kind": KIND_CLUSTER, **cluster.to_dict()}
        self._objects[key] = payload
        self.cluster_writes.append(copy.deepcopy(payload))

    def get_backup(self, namespace: str, name: str) -> Backup:
        return decode_resource(Backup.from_dict, self._get(KIND_BACKUP, namespace, name), what="backup")

    def _list_labelled(self, kind: str, namespace: str, selector: Mapping[str, str]) -> list[str]:
        return sorted(
            name
            for (k, ns, name), labels in self._labelled.items()
            if k == kind and ns == namespace and _matches(labels, selector)
        )

    def list_pods(self, namespace: str, selector: Mapping[str, str]) -> list[str]:
        return self._list_labelled(KIND_POD, namespace, selector)

    def list_pvcs(self, namespace: str, selector: Mapping[str, str]) -> list[str]:
        return self._list_labelled(KIND_PVC, namespace, selector)
