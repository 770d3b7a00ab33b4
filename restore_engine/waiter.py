"""
Bounded waits over labelled resource sets.

The waiter polls at a fixed interval with no backoff: quiesce confirmation is
bounded by known teardown latencies, so a plain poll limit is enough. Each
poll lists the resources matching a label selector and evaluates a predicate
over the result.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable, Mapping, Sequence

from restore_engine.errors import RestoreControllerError, ResourceStoreError, WaitTimeoutError

if TYPE_CHECKING:
    from restore_engine.store import ResourceStore

WAIT_LIMIT_SECONDS = 300

ListItems = Callable[[str, Mapping[str, str]], Sequence[str]]
Predicate = Callable[[Sequence[str]], bool]


def wait_until(
    list_items: ListItems,
    selector: Mapping[str, str],
    namespace: str,
    predicate: Predicate,
    max_polls: int,
    *,
    what: str = "resource",
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """
    Poll a labelled resource set until a predicate holds.

    Parameters
    ----------
    list_items:
        Callable returning the names of resources matching (namespace, selector).
    selector:
        Label selector; every label must match.
    namespace:
        Namespace to list in.
    predicate:
        Evaluated against each listing; the wait ends when it returns True.
    max_polls:
        Maximum number of polls before giving up.
    what:
        Resource description used in error messages (e.g. "pods").
    interval:
        Seconds to sleep between unsatisfied polls.
    sleep:
        Injectable sleep function.

    Returns
    -------
    int
        Number of polls performed, including the satisfying one.

    Raises
    ------
    WaitTimeoutError
        If the predicate did not hold within `max_polls` polls.
    ResourceStoreError
        If listing fails; the wait is aborted immediately.
    """
    for poll in range(1, max_polls + 1):
        try:
            items = list_items(namespace, selector)
        except RestoreControllerError as exc:
            raise ResourceStoreError(f"get {what} list: {exc}") from exc

        if predicate(items):
            return poll

        if poll < max_polls:
            sleep(interval)

    raise WaitTimeoutError("exceeded wait limit")


def wait_for_pods_shutdown(
    store: ResourceStore,
    selector: Mapping[str, str],
    namespace: str,
    grace_period_seconds: int = 0,
    *,
    wait_limit_seconds: int = WAIT_LIMIT_SECONDS,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Wait until no pod matches `selector`; the limit includes the grace period."""
    return wait_until(
        store.list_pods,
        selector,
        namespace,
        lambda pods: len(pods) == 0,
        wait_limit_seconds + max(grace_period_seconds, 0),
        what="pods",
        interval=interval,
        sleep=sleep,
    )


def wait_for_single_pvc(
    store: ResourceStore,
    selector: Mapping[str, str],
    namespace: str,
    *,
    wait_limit_seconds: int = WAIT_LIMIT_SECONDS,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Wait until exactly one volume claim matches `selector`."""
    return wait_until(
        store.list_pvcs,
        selector,
        namespace,
        lambda pvcs: len(pvcs) == 1,
        wait_limit_seconds,
        what="pvc",
        interval=interval,
        sleep=sleep,
    )


def wait_for_pod_count(
    store: ResourceStore,
    selector: Mapping[str, str],
    namespace: str,
    expected: int,
    *,
    wait_limit_seconds: int = WAIT_LIMIT_SECONDS,
    interval: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Wait until exactly `expected` pods match `selector`."""
    return wait_until(
        store.list_pods,
        selector,
        namespace,
        lambda pods: len(pods) == expected,
        wait_limit_seconds,
        what="pods",
        interval=interval,
        sleep=sleep,
    )
