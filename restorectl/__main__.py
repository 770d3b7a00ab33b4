"""
Module entrypoint for the restorectl CLI.

This file exists so that `python -m restorectl ...` works consistently in all
environments, including when the console-script wrapper is not installed.
"""

from __future__ import annotations

import sys

from restorectl.cli import main


def _run() -> None:
    """
    Execute the restorectl command line interface.

    Raises
    ------
    SystemExit
        Always, carrying the CLI exit code.
    """
    sys.exit(main())


if __name__ == "__main__":
    _run()
