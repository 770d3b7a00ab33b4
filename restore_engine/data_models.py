"""Data models for the restore controller.

This module defines the typed representation of the three resources the
controller reads and writes: restore requests, backups and clusters. They are
decoded from (and encoded to) the Kubernetes camelCase wire format.

Top-level resources keep the raw document they were decoded from. Encoding
overlays the modelled fields onto a copy of that document, so writing back an
object never drops fields this module does not model.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Self

ISO_8601_UTC_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

ANNOTATION_UNSAFE_PITR = "percona.com/unsafe-pitr"
CONDITION_PITR_READY = "PITRReady"

LABEL_INSTANCE = "app.kubernetes.io/instance"
LABEL_COMPONENT = "app.kubernetes.io/component"


class RestoreState(str, Enum):
    """Lifecycle states of a restore request."""

    NEW = ""
    STARTING = "Starting"
    STOP_CLUSTER = "Stopping Cluster"
    RESTORE = "Restoring"
    START_CLUSTER = "Starting Cluster"
    PITR = "Point-in-time recovering"
    FAILED = "Failed"
    SUCCEEDED = "Succeeded"

    @property
    def is_terminal(self) -> bool:
        """Return True for Succeeded and Failed."""
        return self in (RestoreState.SUCCEEDED, RestoreState.FAILED)


class BackupState(str, Enum):
    """Known backup states. Backups may report others; they are kept as text."""

    NEW = ""
    STARTING = "Starting"
    RUNNING = "Running"
    FAILED = "Failed"
    SUCCEEDED = "Succeeded"


class ConditionStatus(str, Enum):
    """Status values of a resource condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


def datetime_to_iso_utc(dt: datetime) -> str:
    """Serialize a datetime as a UTC ISO-8601 string.

    Parameters
    ----------
    dt
        A timezone-aware datetime.

    Returns
    -------
    str
        ISO-8601 UTC timestamp, normalized to the `Z` suffix.

    Raises
    ------
    ValueError
        If `dt` is naive (has no timezone).
    """

    if dt.tzinfo is None:
        raise ValueError("datetime must be timezone-aware")
    return dt.astimezone(timezone.utc).strftime(ISO_8601_UTC_FORMAT)


def datetime_from_iso_utc(value: str) -> datetime:
    """Parse an RFC 3339 timestamp as an aware UTC datetime.

    Parameters
    ----------
    value
        Timestamp such as ``2024-01-01T10:00:00Z`` or
        ``2024-01-01T12:00:00+02:00``. Text without an offset is taken as UTC.

    Returns
    -------
    datetime
        A timezone-aware datetime with UTC timezone.

    Raises
    ------
    ValueError
        If parsing fails.
    """

    return _as_utc(datetime.fromisoformat(value))


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_time(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    # YAML loaders hand unquoted timestamps over as datetime objects.
    if isinstance(value, datetime):
        return _as_utc(value)
    return datetime_from_iso_utc(str(value))


def _mapping(value: Any, *, context: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{context} must be a mapping, got {type(value).__name__}")
    return dict(value)


def _str_map(value: Any, *, context: str) -> dict[str, str]:
    return {str(k): str(v) for k, v in _mapping(value, context=context).items()}


def _deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in overlay.items():
        existing = merged.get(key)
        if isinstance(value, Mapping) and isinstance(existing, Mapping):
            merged[key] = _deep_merge(existing, value)
        else:
            merged[key] = value
    return merged


@dataclass(slots=True)
class ObjectMeta:
    """Identity and metadata shared by all resources."""

    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: str | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct :class:`ObjectMeta` from a metadata mapping."""

        name = payload.get("name")
        if not name:
            raise ValueError("metadata.name is required")
        version = payload.get("resourceVersion")
        return cls(
            name=str(name),
            namespace=str(payload.get("namespace") or ""),
            labels=_str_map(payload.get("labels"), context="metadata.labels"),
            annotations=_str_map(payload.get("annotations"), context="metadata.annotations"),
            resource_version=str(version) if version is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        payload: dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if self.labels:
            payload["labels"] = dict(self.labels)
        if self.annotations:
            payload["annotations"] = dict(self.annotations)
        if self.resource_version is not None:
            payload["resourceVersion"] = self.resource_version
        return payload


@dataclass(frozen=True, slots=True)
class Condition:
    """A typed status condition attached to a resource."""

    type: str
    status: str
    reason: str = ""
    message: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`Condition` from a mapping."""

        if "type" not in payload or "status" not in payload:
            raise ValueError("condition requires 'type' and 'status'")
        return cls(
            type=str(payload["type"]),
            status=str(payload["status"]),
            reason=str(payload.get("reason") or ""),
            message=str(payload.get("message") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        payload = {"type": self.type, "status": self.status}
        if self.reason:
            payload["reason"] = self.reason
        if self.message:
            payload["message"] = self.message
        return payload


def find_condition(conditions: tuple[Condition, ...], condition_type: str) -> Condition | None:
    """Return the condition of the given type, or None when absent."""
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


@dataclass(frozen=True, slots=True)
class BackupStatus:
    """
    Observed state of a backup.

    An inline backup source on a restore request has the same shape: it
    describes where an existing backup artifact lives without a backup object.
    """

    state: str = BackupState.NEW.value
    destination: str = ""
    storage_name: str = ""
    completed_at: datetime | None = None
    last_scheduled: datetime | None = None
    conditions: tuple[Condition, ...] = ()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`BackupStatus` from a mapping."""

        raw_conditions = payload.get("conditions") or []
        if not isinstance(raw_conditions, list):
            raise ValueError("backup status conditions must be a list")
        return cls(
            state=str(payload.get("state") or ""),
            destination=str(payload.get("destination") or ""),
            storage_name=str(payload.get("storageName") or ""),
            completed_at=_optional_time(payload.get("completed")),
            last_scheduled=_optional_time(payload.get("lastscheduled")),
            conditions=tuple(Condition.from_dict(c) for c in raw_conditions),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        payload: dict[str, Any] = {"state": self.state}
        if self.destination:
            payload["destination"] = self.destination
        if self.storage_name:
            payload["storageName"] = self.storage_name
        if self.completed_at is not None:
            payload["completed"] = datetime_to_iso_utc(self.completed_at)
        if self.last_scheduled is not None:
            payload["lastscheduled"] = datetime_to_iso_utc(self.last_scheduled)
        if self.conditions:
            payload["conditions"] = [c.to_dict() for c in self.conditions]
        return payload

    @property
    def succeeded(self) -> bool:
        """Return True when the backup reached its terminal success state."""
        return self.state == BackupState.SUCCEEDED.value

    def as_succeeded(self) -> BackupStatus:
        """Return a copy marked Succeeded with no completion/schedule times."""
        return replace(
            self,
            state=BackupState.SUCCEEDED.value,
            completed_at=None,
            last_scheduled=None,
        )


@dataclass(frozen=True, slots=True)
class BackupSpec:
    """Desired state of a backup."""

    cluster_name: str = ""
    storage_name: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`BackupSpec` from a mapping."""

        return cls(
            cluster_name=str(payload.get("pxcCluster") or ""),
            storage_name=str(payload.get("storageName") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        return {"pxcCluster": self.cluster_name, "storageName": self.storage_name}


@dataclass(slots=True)
class Backup:
    """A backup resource, persisted or synthesized from an inline source."""

    metadata: ObjectMeta
    spec: BackupSpec
    status: BackupStatus
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`Backup` from a resource document."""

        return cls(
            metadata=ObjectMeta.from_dict(_mapping(payload.get("metadata"), context="metadata")),
            spec=BackupSpec.from_dict(_mapping(payload.get("spec"), context="spec")),
            status=BackupStatus.from_dict(_mapping(payload.get("status"), context="status")),
            raw=copy.deepcopy(dict(payload)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        return _deep_merge(
            self.raw,
            {
                "metadata": self.metadata.to_dict(),
                "spec": self.spec.to_dict(),
                "status": self.status.to_dict(),
            },
        )


class PITRType(str, Enum):
    """Supported point-in-time recovery target kinds."""

    DATE = "date"
    LATEST = "latest"
    GTID = "gtid"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class PITRSpec:
    """Point-in-time recovery target of a restore request."""

    type: str
    date: str = ""
    gtid: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`PITRSpec` from a mapping."""

        return cls(
            type=str(payload.get("type") or ""),
            date=str(payload.get("date") or ""),
            gtid=str(payload.get("gtid") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        payload = {"type": self.type}
        if self.date:
            payload["date"] = self.date
        if self.gtid:
            payload["gtid"] = self.gtid
        return payload


@dataclass(frozen=True, slots=True)
class RestoreSpec:
    """Desired restore: target cluster, backup reference, optional PITR target."""

    cluster_name: str
    backup_name: str = ""
    backup_source: BackupStatus | None = None
    pitr: PITRSpec | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`RestoreSpec` from a mapping."""

        source = payload.get("backupSource")
        pitr = payload.get("pitr")
        return cls(
            cluster_name=str(payload.get("pxcCluster") or ""),
            backup_name=str(payload.get("backupName") or ""),
            backup_source=(
                BackupStatus.from_dict(_mapping(source, context="spec.backupSource"))
                if source is not None
                else None
            ),
            pitr=PITRSpec.from_dict(_mapping(pitr, context="spec.pitr")) if pitr is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        payload: dict[str, Any] = {"pxcCluster": self.cluster_name}
        if self.backup_name:
            payload["backupName"] = self.backup_name
        if self.backup_source is not None:
            payload["backupSource"] = self.backup_source.to_dict()
        if self.pitr is not None:
            payload["pitr"] = self.pitr.to_dict()
        return payload


@dataclass(slots=True)
class RestoreStatus:
    """Observed progress of a restore request."""

    state: RestoreState = RestoreState.NEW
    comments: str = ""
    completed_at: datetime | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`RestoreStatus` from a mapping."""

        return cls(
            state=RestoreState(str(payload.get("state") or "")),
            comments=str(payload.get("comments") or ""),
            completed_at=_optional_time(payload.get("completed")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        payload: dict[str, Any] = {"state": self.state.value, "comments": self.comments}
        if self.completed_at is not None:
            payload["completed"] = datetime_to_iso_utc(self.completed_at)
        return payload


@dataclass(slots=True)
class RestoreRequest:
    """A declarative restore request and its status."""

    metadata: ObjectMeta
    spec: RestoreSpec
    status: RestoreStatus = field(default_factory=RestoreStatus)
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`RestoreRequest` from a resource document."""

        return cls(
            metadata=ObjectMeta.from_dict(_mapping(payload.get("metadata"), context="metadata")),
            spec=RestoreSpec.from_dict(_mapping(payload.get("spec"), context="spec")),
            status=RestoreStatus.from_dict(_mapping(payload.get("status"), context="status")),
            raw=copy.deepcopy(dict(payload)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        payload = _deep_merge(
            self.raw,
            {"metadata": self.metadata.to_dict(), "spec": self.spec.to_dict()},
        )
        # Status is replaced wholesale so cleared fields do not survive.
        payload["status"] = self.status.to_dict()
        return payload

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def unsafe_pitr(self) -> bool:
        """Return True when the PITR readiness override annotation is present."""
        return ANNOTATION_UNSAFE_PITR in self.metadata.annotations


@dataclass(slots=True)
class PodGroupSpec:
    """Database member group (the primary role)."""

    size: int = 0
    grace_period_seconds: int | None = None

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        grace = payload.get("gracePeriod")
        return cls(
            size=int(payload.get("size") or 0),
            grace_period_seconds=int(grace) if grace is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"size": self.size}
        if self.grace_period_seconds is not None:
            payload["gracePeriod"] = self.grace_period_seconds
        return payload


@dataclass(slots=True)
class ProxySpec:
    """An optional secondary role (HAProxy or ProxySQL)."""

    enabled: bool = False
    size: int = 0

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        return cls(enabled=bool(payload.get("enabled", False)), size=int(payload.get("size") or 0))

    def to_dict(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "size": self.size}


@dataclass(slots=True)
class UnsafeFlags:
    """Flags permitting topologies that normal admission rules reject."""

    pxc_size: bool = False
    proxy_size: bool = False

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        return cls(
            pxc_size=bool(payload.get("pxcSize", False)),
            proxy_size=bool(payload.get("proxySize", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"pxcSize": self.pxc_size, "proxySize": self.proxy_size}


@dataclass(slots=True)
class PITRConfig:
    """Binlog collection settings of a cluster."""

    enabled: bool = False
    storage_name: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        return cls(
            enabled=bool(payload.get("enabled", False)),
            storage_name=str(payload.get("storageName") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"enabled": self.enabled}
        if self.storage_name:
            payload["storageName"] = self.storage_name
        return payload


@dataclass(slots=True)
class ClusterBackupSpec:
    """Backup storages and PITR settings of a cluster."""

    storages: dict[str, dict[str, Any]] = field(default_factory=dict)
    pitr: PITRConfig = field(default_factory=PITRConfig)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        storages = _mapping(payload.get("storages"), context="spec.backup.storages")
        return cls(
            storages={
                str(name): _mapping(storage, context=f"spec.backup.storages.{name}")
                for name, storage in storages.items()
            },
            pitr=PITRConfig.from_dict(_mapping(payload.get("pitr"), context="spec.backup.pitr")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"storages": copy.deepcopy(self.storages), "pitr": self.pitr.to_dict()}


@dataclass(slots=True)
class ClusterSpec:
    """Desired topology and settings of a database cluster."""

    cr_version: str = ""
    pause: bool = False
    pxc: PodGroupSpec = field(default_factory=PodGroupSpec)
    haproxy: ProxySpec | None = None
    proxysql: ProxySpec | None = None
    unsafe: UnsafeFlags = field(default_factory=UnsafeFlags)
    backup: ClusterBackupSpec = field(default_factory=ClusterBackupSpec)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`ClusterSpec` from a mapping."""

        haproxy = payload.get("haproxy")
        proxysql = payload.get("proxysql")
        return cls(
            cr_version=str(payload.get("crVersion") or ""),
            pause=bool(payload.get("pause", False)),
            pxc=PodGroupSpec.from_dict(_mapping(payload.get("pxc"), context="spec.pxc")),
            haproxy=(
                ProxySpec.from_dict(_mapping(haproxy, context="spec.haproxy"))
                if haproxy is not None
                else None
            ),
            proxysql=(
                ProxySpec.from_dict(_mapping(proxysql, context="spec.proxysql"))
                if proxysql is not None
                else None
            ),
            unsafe=UnsafeFlags.from_dict(_mapping(payload.get("unsafeFlags"), context="spec.unsafeFlags")),
            backup=ClusterBackupSpec.from_dict(_mapping(payload.get("backup"), context="spec.backup")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        payload: dict[str, Any] = {
            "pause": self.pause,
            "pxc": self.pxc.to_dict(),
            "unsafeFlags": self.unsafe.to_dict(),
            "backup": self.backup.to_dict(),
        }
        if self.cr_version:
            payload["crVersion"] = self.cr_version
        if self.haproxy is not None:
            payload["haproxy"] = self.haproxy.to_dict()
        if self.proxysql is not None:
            payload["proxysql"] = self.proxysql.to_dict()
        return payload


@dataclass(slots=True)
class Cluster:
    """A database cluster resource."""

    metadata: ObjectMeta
    spec: ClusterSpec
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Self:
        """Construct a :class:`Cluster` from a resource document."""

        return cls(
            metadata=ObjectMeta.from_dict(_mapping(payload.get("metadata"), context="metadata")),
            spec=ClusterSpec.from_dict(_mapping(payload.get("spec"), context="spec")),
            raw=copy.deepcopy(dict(payload)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert this model to a JSON-serializable dict."""

        return _deep_merge(
            self.raw,
            {"metadata": self.metadata.to_dict(), "spec": self.spec.to_dict()},
        )

    def deep_copy(self) -> Cluster:
        """Return an independent copy; mutations never leak between copies."""
        return copy.deepcopy(self)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def pod_selector(self, component: str | None = None) -> dict[str, str]:
        """Label selector matching this cluster's pods (optionally one component)."""
        selector = {LABEL_INSTANCE: self.metadata.name}
        if component is not None:
            selector[LABEL_COMPONENT] = component
        return selector
