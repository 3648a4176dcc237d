"""Entry point for the moviedb command line."""

from __future__ import annotations

import sys

from .cli.app import run_cli


def main() -> int:
    """Run the moviedb command dispatcher."""

    return run_cli()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
