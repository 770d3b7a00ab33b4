"""
Command-line interface for restorectl.

Notes
-----
The CLI is intentionally thin. It parses arguments, wires a resource store and
collaborators, and delegates to engine modules.

Exit codes
----------
- 0: success (including no-op reconciles).
- 1: a restore failed or a domain check did not pass.
- 2: usage or configuration error.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from restore_engine.collaborators import load_collaborators
from restore_engine.config import ControllerConfig, load_config
from restore_engine.data_models import RestoreState
from restore_engine.defaults import DEFAULT_CR_VERSION
from restore_engine.errors import ConfigError, RestoreControllerError
from restore_engine.reconcile.controller import RestoreReconciler
from restore_engine.reconcile.preflight import run_preflight
from restore_engine.store import InMemoryResourceStore, ResourceStore

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """
    Build and return the top-level argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured parser.
    """
    parser = argparse.ArgumentParser(
        prog="restorectl",
        description="Drive point-in-time-consistent restores of database clusters",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    def _add_identity(p: argparse.ArgumentParser, *, with_name: bool = True) -> None:
        p.add_argument("--namespace", required=True, help="Namespace of the restore request(s)")
        if with_name:
            p.add_argument("--name", required=True, help="Name of the restore request")

    def _add_wiring(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--collaborators",
            required=True,
            help="Collaborators factory as 'package.module:factory'; called with the resource store and config.",
        )
        p.add_argument(
            "--journal-root",
            type=Path,
            default=None,
            help="Directory for per-restore execution journals (overrides RESTORECTL_JOURNAL_ROOT).",
        )
        p.add_argument(
            "--server-version",
            default=DEFAULT_CR_VERSION,
            help=f"Version used for clusters without crVersion (default: {DEFAULT_CR_VERSION}).",
        )

    reconcile_p = sub.add_parser("reconcile", help="Process one restore request")
    _add_identity(reconcile_p)
    _add_wiring(reconcile_p)

    sweep_p = sub.add_parser("sweep", help="Process every New restore request in a namespace")
    _add_identity(sweep_p, with_name=False)
    _add_wiring(sweep_p)

    check_p = sub.add_parser(
        "check",
        help="Offline preflight of a restore request against YAML manifests (no writes)",
    )
    _add_identity(check_p)
    check_p.add_argument(
        "--manifests",
        type=Path,
        nargs="+",
        required=True,
        help="YAML files holding the restore, cluster and backup documents",
    )
    check_p.add_argument(
        "--server-version",
        default=DEFAULT_CR_VERSION,
        help=f"Version used for clusters without crVersion (default: {DEFAULT_CR_VERSION}).",
    )

    status_p = sub.add_parser("status", help="Print the status of a restore request")
    _add_identity(status_p)

    return parser


def _kube_store(controller_config: ControllerConfig) -> ResourceStore:
    # Imported lazily so offline commands work without cluster access.
    from restore_engine.kube_store import KubeResourceStore

    return KubeResourceStore.from_environment(controller_config)


def _load_manifests(paths: list[Path]) -> InMemoryResourceStore:
    documents: list[dict[str, Any]] = []
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"Failed to read manifest: {path} ({exc})") from exc
        try:
            loaded = [doc for doc in yaml.safe_load_all(text) if doc is not None]
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in manifest: {path} ({exc})") from exc
        for doc in loaded:
            if not isinstance(doc, dict):
                raise ConfigError(f"Manifest documents must be mappings: {path}")
            documents.append(doc)
    return InMemoryResourceStore.from_documents(documents)


def _reconciler(args: argparse.Namespace, store: ResourceStore, controller_config: ControllerConfig) -> RestoreReconciler:
    collaborators = load_collaborators(args.collaborators, store, controller_config)
    return RestoreReconciler(
        store,
        collaborators,
        config=controller_config,
        server_version=args.server_version,
    )


def _cmd_reconcile(args: argparse.Namespace) -> int:
    controller_config = load_config(journal_root=args.journal_root)
    store = _kube_store(controller_config)
    reconciler = _reconciler(args, store, controller_config)
    try:
        reconciler.reconcile(args.namespace, args.name)
    except Exception as exc:  # noqa: BLE001
        # PITR checker errors are not wrapped in domain errors.
        print(f"ERROR: {exc}")
        return 1
    restore = store.get_restore(args.namespace, args.name)
    print(f"{args.namespace}/{args.name}: {restore.status.state.value or 'New'}")
    return 0


def _cmd_sweep(args: argparse.Namespace) -> int:
    controller_config = load_config(journal_root=args.journal_root)
    store = _kube_store(controller_config)
    reconciler = _reconciler(args, store, controller_config)

    failures = 0
    for request in store.list_restores(args.namespace):
        if request.status.state is not RestoreState.NEW:
            continue
        try:
            reconciler.reconcile(args.namespace, request.name)
        except Exception as exc:  # noqa: BLE001
            # Failures are counted per request.
            failures += 1
            print(f"ERROR: {args.namespace}/{request.name}: {exc}")
        else:
            print(f"{args.namespace}/{request.name}: done")
    return 1 if failures else 0


def _cmd_check(args: argparse.Namespace) -> int:
    store = _load_manifests(args.manifests)
    try:
        report = run_preflight(store, args.namespace, args.name, server_version=args.server_version)
    except RestoreControllerError as exc:
        print(f"ERROR: {exc}")
        return 1
    print(json.dumps(report.to_dict(), indent=2, sort_keys=True))
    return 0


def _cmd_status(args: argparse.Namespace) -> int:
    store = _kube_store(load_config())
    restore = store.get_restore(args.namespace, args.name)
    payload = restore.status.to_dict()
    payload["state"] = restore.status.state.value or "New"
    print(json.dumps(payload, indent=2, sort_keys=True))
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    CLI entry point.

    Parameters
    ----------
    argv:
        Optional argument vector. If None, argparse uses sys.argv.

    Returns
    -------
    int
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format=LOG_FORMAT,
    )

    handlers = {
        "reconcile": _cmd_reconcile,
        "sweep": _cmd_sweep,
        "check": _cmd_check,
        "status": _cmd_status,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args)
    except ConfigError as exc:
        print(f"ERROR: {exc}")
        return 2
    except RestoreControllerError as exc:
        print(f"ERROR: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
