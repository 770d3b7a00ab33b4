"""
Controller configuration.

Configuration comes from environment variables with conservative defaults.
The CLI may override the journal root explicitly.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from restore_engine.errors import ConfigError
from restore_engine.waiter import WAIT_LIMIT_SECONDS

DEFAULT_API_GROUP = "pxc.percona.com"
DEFAULT_API_VERSION = "v1"


@dataclass(frozen=True, slots=True)
class ControllerConfig:
    """
    Runtime settings for the restore reconciler.

    Attributes
    ----------
    wait_limit_seconds:
        Base poll limit for bounded waits (one poll per interval).
    poll_interval_seconds:
        Delay between waiter polls.
    journal_root:
        Root directory for execution journals; None disables journaling.
    api_group:
        Custom resource API group used by the Kubernetes store.
    api_version:
        Custom resource API version used by the Kubernetes store.
    """

    wait_limit_seconds: int = WAIT_LIMIT_SECONDS
    poll_interval_seconds: float = 1.0
    journal_root: Path | None = None
    api_group: str = DEFAULT_API_GROUP
    api_version: str = DEFAULT_API_VERSION


def _int_setting(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def _float_setting(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigError(f"{key} must not be negative, got {value}")
    return value


def load_config(
    environ: Mapping[str, str] | None = None,
    *,
    journal_root: Path | None = None,
) -> ControllerConfig:
    """
    Load controller configuration.

    Parameters
    ----------
    environ:
        Environment mapping; defaults to ``os.environ``.
    journal_root:
        Explicit journal root. Takes precedence over RESTORECTL_JOURNAL_ROOT.

    Returns
    -------
    ControllerConfig
        Resolved configuration.

    Raises
    ------
    ConfigError
        If a numeric setting cannot be parsed or is out of range.
    """
    env = os.environ if environ is None else environ

    root = journal_root
    if root is None:
        raw_root = env.get("RESTORECTL_JOURNAL_ROOT")
        if raw_root:
            root = Path(raw_root).expanduser()

    return ControllerConfig(
        wait_limit_seconds=_int_setting(env, "RESTORECTL_WAIT_LIMIT", WAIT_LIMIT_SECONDS),
        poll_interval_seconds=_float_setting(env, "RESTORECTL_POLL_INTERVAL", 1.0),
        journal_root=root,
        api_group=env.get("RESTORECTL_API_GROUP") or DEFAULT_API_GROUP,
        api_version=env.get("RESTORECTL_API_VERSION") or DEFAULT_API_VERSION,
    )
