"""
Filesystem path policy for controller artifacts.

The controller writes only one kind of local artifact: the per-restore
execution journal. This module is the single place that decides where those
files live and rejects identities that would escape the journal root.
"""

from __future__ import annotations

from pathlib import Path

from restore_engine.errors import ConfigError


def _check_segment(value: str, *, purpose: str) -> str:
    segment = value.strip()
    if not segment:
        raise ConfigError(f"{purpose} must not be empty.")
    if any(ch in segment for ch in r'\/:*?"<>|'):
        raise ConfigError(f"{purpose} contains invalid characters: {segment!r}")
    if segment in {".", ".."}:
        raise ConfigError(f"{purpose} must not be '.' or '..'.")
    return segment


def restore_journal_path(journal_root: Path, namespace: str, name: str) -> Path:
    """
    Build the journal path for one restore request.

    Parameters
    ----------
    journal_root:
        Root directory for all restore journals.
    namespace:
        Namespace of the restore request.
    name:
        Name of the restore request.

    Returns
    -------
    Path
        ``<journal_root>/<namespace>/<name>/execution_journal.jsonl``.

    Raises
    ------
    ConfigError
        If namespace or name cannot be used as a single path segment.
    """
    ns = _check_segment(namespace, purpose="Namespace")
    nm = _check_segment(name, purpose="Restore name")
    return journal_root / ns / nm / "execution_journal.jsonl"
