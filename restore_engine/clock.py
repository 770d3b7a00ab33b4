"""
Time sources for restore bookkeeping.

The reconciler reads the time in two places only: the ``completed`` stamp
written with a Succeeded status, and the ``ts`` field of every execution
journal record. Both go through a `Clock` handed to the reconciler, so a
restore replayed under `FixedClock` produces byte-identical status writes and
journal lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of completion and journal timestamps."""

    def now(self) -> datetime:
        """Return the current time as a timezone-aware datetime."""
        ...


@dataclass(frozen=True, slots=True)
class SystemClock:
    """Wall-clock time in UTC, used by the CLI against a live cluster."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class FixedClock:
    """
    Clock pinned to one instant.

    Every status stamp and journal record of a reconcile carries `fixed_time`.
    A naive `fixed_time` is read as UTC, matching how timestamps without an
    offset are decoded from resource documents.
    """

    fixed_time: datetime

    def now(self) -> datetime:
        if self.fixed_time.tzinfo is None:
            return self.fixed_time.replace(tzinfo=timezone.utc)
        return self.fixed_time
