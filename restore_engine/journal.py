"""
Per-request execution journal.

Each restore request gets its own JSONL file under the configured journal
root. The reconciler appends a record when it picks the request up, on every
status transition, when it overrides the topology for PITR replay, when
binlog cache invalidation fails, and once when the request finishes. Records
look like::

    {"data":{"from":"Restoring","to":"Starting Cluster"},"event":"restore_state_changed","ts":"..."}

The journal is a local audit trail. The status subresource stays the source of
truth, and callers treat write failures as warnings.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from restore_engine.clock import Clock


@dataclass(frozen=True)
class JournalEvent:
    """
    One journal record before serialization.

    Parameters
    ----------
    timestamp : datetime
        Event time (timezone-aware).
    event : str
        Event name, e.g. `restore_state_changed` or `restore_finished`.
    data : Mapping[str, Any]
        Structured event payload. Must be JSON-serializable.
    """

    timestamp: datetime
    event: str
    data: Mapping[str, Any]


class RestoreExecutionJournal:
    """
    Append-only JSONL journal for one restore request.

    The file lives at `restore_journal_path(root, namespace, name)`. A request
    is processed at most once, so a journal normally holds one
    `restore_reconcile_started` record followed by the state transitions and a
    single `restore_finished` carrying the final state and, on failure, the
    error type and text.

    Constructing a journal creates its directory and may raise `OSError`.
    """

    def __init__(self, journal_path: Path, *, clock: Clock) -> None:
        self._journal_path = journal_path
        self._clock = clock
        self._journal_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        """Return the on-disk path to the journal file."""
        return self._journal_path

    def append(self, event: str, data: Mapping[str, Any]) -> None:
        """
        Append one record stamped with the journal clock.

        Keys are sorted and separators compact so that two runs under the same
        `FixedClock` produce identical lines.

        Raises
        ------
        OSError
            If the journal cannot be written.
        TypeError
            If `data` contains non-JSON-serializable values.
        """
        record = JournalEvent(timestamp=self._clock.now(), event=event, data=data)
        line = json.dumps(
            {
                "ts": record.timestamp.isoformat(),
                "event": record.event,
                "data": record.data,
            },
            ensure_ascii=False,
            sort_keys=True,
            separators=(",", ":"),
        )

        with self._journal_path.open("a", encoding="utf-8", newline="\n") as handle:
            handle.write(line + "\n")
            handle.flush()

    def read_events(self) -> list[dict[str, Any]]:
        """Return all recorded events in write order (empty if none yet)."""
        if not self._journal_path.exists():
            return []
        lines = self._journal_path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]
