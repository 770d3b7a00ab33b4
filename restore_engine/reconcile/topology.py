"""
Temporary single-member topology for PITR replay.

Binlog replay must run against exactly one database member with no proxies
routing traffic. `override_topology` records the sizes and unsafe flags it
replaces; `restore_topology` writes them back verbatim. Use
`overridden_topology` so the restore happens on every exit path.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from restore_engine.data_models import Cluster


@dataclass(frozen=True, slots=True)
class TopologySnapshot:
    """
    Topology fields captured before an override.

    Attributes
    ----------
    pxc_size:
        Database member count.
    haproxy_size:
        HAProxy size, 0 when HAProxy is not configured.
    proxysql_size:
        ProxySQL size, 0 when ProxySQL is not configured.
    unsafe_pxc_size:
        Previous value of unsafeFlags.pxcSize.
    unsafe_proxy_size:
        Previous value of unsafeFlags.proxySize.
    """

    pxc_size: int
    haproxy_size: int
    proxysql_size: int
    unsafe_pxc_size: bool
    unsafe_proxy_size: bool


def capture_topology(cluster: Cluster) -> TopologySnapshot:
    """
    Record the sizes and unsafe flags that a PITR override would change.

    The cluster is not modified. Proxies that are not configured are recorded
    with size 0.
    """
    spec = cluster.spec
    return TopologySnapshot(
        pxc_size=spec.pxc.size,
        haproxy_size=spec.haproxy.size if spec.haproxy is not None else 0,
        proxysql_size=spec.proxysql.size if spec.proxysql is not None else 0,
        unsafe_pxc_size=spec.unsafe.pxc_size,
        unsafe_proxy_size=spec.unsafe.proxy_size,
    )


def override_topology(cluster: Cluster) -> TopologySnapshot:
    """
    Shrink `cluster` in place to one member and no proxies.

    Both unsafe flags are set because a single-member topology is rejected by
    normal admission rules.

    Returns
    -------
    TopologySnapshot
        The values that were replaced.
    """
    snapshot = capture_topology(cluster)
    spec = cluster.spec
    spec.unsafe.pxc_size = True
    spec.unsafe.proxy_size = True
    spec.pxc.size = 1
    if spec.haproxy is not None:
        spec.haproxy.size = 0
    if spec.proxysql is not None:
        spec.proxysql.size = 0
    return snapshot


def restore_topology(cluster: Cluster, snapshot: TopologySnapshot) -> None:
    """Write every captured value back; unconfigured roles stay absent."""
    spec = cluster.spec
    spec.pxc.size = snapshot.pxc_size
    spec.unsafe.pxc_size = snapshot.unsafe_pxc_size
    spec.unsafe.proxy_size = snapshot.unsafe_proxy_size
    if spec.haproxy is not None:
        spec.haproxy.size = snapshot.haproxy_size
    if spec.proxysql is not None:
        spec.proxysql.size = snapshot.proxysql_size


@contextmanager
def overridden_topology(cluster: Cluster) -> Iterator[TopologySnapshot]:
    """
    Apply `override_topology` for the duration of a block.

    The captured topology is restored when the block exits, including when it
    raises; the exception then propagates.
    """
    snapshot = override_topology(cluster)
    try:
        yield snapshot
    finally:
        restore_topology(cluster, snapshot)
