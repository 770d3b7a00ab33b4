"""
External collaborators of the restore reconciler.

The reconciler sequences these operations but does not implement their
mechanics: copying backup data, replaying binlogs, and checking binlog
consistency all live behind the protocols below. Deployments supply them as a
:class:`Collaborators` bundle built by a factory (see `load_collaborators`).
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass
from typing import Callable, Protocol

from restore_engine.config import ControllerConfig
from restore_engine.data_models import Backup, Cluster, RestoreRequest
from restore_engine.errors import ConfigError
from restore_engine.store import ResourceStore


class ClusterLifecycle(Protocol):
    """Quiesce and resume a cluster."""

    def pause(self, cluster: Cluster, wait_for_shutdown: bool) -> None:
        """Pause `cluster`; when asked, block until its pods are gone."""
        raise NotImplementedError

    def unpause(self, cluster: Cluster) -> None:
        """Resume `cluster` at the topology it carries and wait for convergence."""
        raise NotImplementedError


class PITRErrorChecker(Protocol):
    """Validates a cluster's own binlog retention/consistency state."""

    def check_pitr_errors(self, cluster: Cluster) -> None:
        raise NotImplementedError


class RestoreRunner(Protocol):
    """Restores a backup into a paused cluster."""

    def run_restore(self, request: RestoreRequest, backup: Backup, cluster: Cluster) -> None:
        raise NotImplementedError


class PITRRunner(Protocol):
    """Replays binlogs up to the request's PITR target."""

    def run_pitr(self, request: RestoreRequest, backup: Backup, cluster: Cluster) -> None:
        raise NotImplementedError


class CacheInvalidator(Protocol):
    """Invalidates the binlog collector cache after a restore."""

    def invalidate(self, cluster: Cluster) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class Collaborators:
    """
    Bundle of external operations used by the reconciler.

    Attributes
    ----------
    lifecycle:
        Quiesce/resume operations.
    pitr_checker:
        Cluster-side PITR error check.
    restore_runner:
        Backup restore operation.
    pitr_runner:
        Binlog replay operation.
    cache_invalidator:
        Best-effort binlog cache invalidation.
    """

    lifecycle: ClusterLifecycle
    pitr_checker: PITRErrorChecker
    restore_runner: RestoreRunner
    pitr_runner: PITRRunner
    cache_invalidator: CacheInvalidator


CollaboratorsFactory = Callable[[ResourceStore, ControllerConfig], Collaborators]


def load_collaborators(target: str, store: ResourceStore, config: ControllerConfig) -> Collaborators:
    """
    Import a collaborators factory and build the bundle.

    Parameters
    ----------
    target:
        ``"package.module:factory"``; the factory is called with
        `(store, config)`.
    store:
        Resource store the collaborators should use.
    config:
        Controller configuration (wait limits, poll interval).

    Returns
    -------
    Collaborators
        The bundle returned by the factory.

    Raises
    ------
    ConfigError
        If the target is malformed, the import fails, or the factory returns
        something other than a :class:`Collaborators`.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Collaborators factory must look like 'module:factory', got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigError(f"Cannot import collaborators module {module_name!r}: {exc}") from exc

    factory = getattr(module, attr, None)
    if not callable(factory):
        raise ConfigError(f"{module_name}.{attr} is not callable")

    bundle = factory(store, config)
    if not isinstance(bundle, Collaborators):
        raise ConfigError(f"{target} returned {type(bundle).__name__}, expected Collaborators")
    return bundle
