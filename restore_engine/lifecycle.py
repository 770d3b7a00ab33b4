"""
Store-backed cluster quiesce/resume.

Pausing is declarative: the cluster resource is written with ``spec.pause``
set and the operator managing the cluster tears its pods down. Confirmation
comes from the bounded waiter watching the cluster's pods.
"""

from __future__ import annotations

import time
from typing import Callable

from restore_engine.config import ControllerConfig
from restore_engine.data_models import Cluster
from restore_engine.defaults import DEFAULT_PXC_SIZE
from restore_engine.store import ResourceStore
from restore_engine.waiter import WAIT_LIMIT_SECONDS, wait_for_pod_count, wait_for_pods_shutdown

PXC_COMPONENT = "pxc"


class StoreClusterLifecycle:
    """
    :class:`~restore_engine.collaborators.ClusterLifecycle` that writes the
    cluster through a :class:`ResourceStore` and waits on pod listings.
    """

    def __init__(
        self,
        store: ResourceStore,
        *,
        wait_limit_seconds: int = WAIT_LIMIT_SECONDS,
        interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._wait_limit_seconds = wait_limit_seconds
        self._interval = interval
        self._sleep = sleep

    @classmethod
    def from_config(cls, store: ResourceStore, config: ControllerConfig) -> StoreClusterLifecycle:
        """Build a lifecycle using the configured wait limit and poll interval."""
        return cls(
            store,
            wait_limit_seconds=config.wait_limit_seconds,
            interval=config.poll_interval_seconds,
        )

    def pause(self, cluster: Cluster, wait_for_shutdown: bool) -> None:
        """
        Pause the cluster and optionally wait for every pod to disappear.

        The wait limit is extended by the pxc termination grace period.

        Raises
        ------
        ResourceStoreError
            If the cluster cannot be written or pods cannot be listed.
        WaitTimeoutError
            If pods are still present after the limit.
        """
        cluster.spec.pause = True
        self._store.update_cluster(cluster)
        if not wait_for_shutdown:
            return

        wait_for_pods_shutdown(
            self._store,
            cluster.pod_selector(),
            cluster.namespace,
            cluster.spec.pxc.grace_period_seconds or 0,
            wait_limit_seconds=self._wait_limit_seconds,
            interval=self._interval,
            sleep=self._sleep,
        )

    def unpause(self, cluster: Cluster) -> None:
        """
        Resume the cluster and wait until the pxc pod count matches its size.

        A cluster without a pxc size is expected to come back with the default
        number of members.

        Raises
        ------
        ResourceStoreError
            If the cluster cannot be written or pods cannot be listed.
        WaitTimeoutError
            If the pxc members do not converge within the limit.
        """
        cluster.spec.pause = False
        self._store.update_cluster(cluster)
        wait_for_pod_count(
            self._store,
            cluster.pod_selector(PXC_COMPONENT),
            cluster.namespace,
            cluster.spec.pxc.size or DEFAULT_PXC_SIZE,
            wait_limit_seconds=self._wait_limit_seconds,
            interval=self._interval,
            sleep=self._sleep,
        )
