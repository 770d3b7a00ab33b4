"""
Concurrency guard for restore requests.

At most one restore may be in flight per cluster. The guard scans the
namespace's restore requests and refuses to proceed while another request for
the same cluster has not reached Succeeded or Failed.
"""

from __future__ import annotations

from typing import Iterable

from restore_engine.data_models import RestoreRequest
from restore_engine.errors import RestoreConflictError


def check_exclusive(cluster_name: str, request_name: str, requests: Iterable[RestoreRequest]) -> None:
    """
    Reject a restore while another restore of the same cluster is in flight.

    Parameters
    ----------
    cluster_name:
        Cluster targeted by the request being processed.
    request_name:
        Name of the request being processed (skipped in the scan).
    requests:
        All restore requests in the namespace.

    Raises
    ------
    RestoreConflictError
        If any other request for `cluster_name` is not Succeeded or Failed.

    Notes
    -----
    This is a check-then-act scan over a listing, not a lock. Two requests
    observed in the same instant can both pass.
    """
    for other in requests:
        if other.spec.cluster_name != cluster_name or other.name == request_name:
            continue
        if not other.status.state.is_terminal:
            raise RestoreConflictError(
                f"unable to continue, concurrent restore job {other.name} running now."
            )
