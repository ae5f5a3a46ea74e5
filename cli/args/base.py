from __future__ import annotations

import argparse

from sast_triage.config import LOG_LEVELS

MODES = ["scan", "import", "list", "dedup", "set-status", "comment"]


def add_base_args(parser: argparse.ArgumentParser) -> None:
    """Register CLI flags that are shared across all modes.

    This includes:
    - mode selection
    - project / workspace selection
    - logging and .env knobs
    """

    parser.add_argument(
        "--mode",
        choices=MODES,
        help=(
            "scan = run Semgrep and import its results, import = import an existing Semgrep JSON file, "
            "list = show findings, dedup = drop duplicate findings, set-status / comment = triage"
        ),
    )
    parser.add_argument(
        "--project",
        help="Project JSON file to load and save (default: $SAST_TRIAGE_PROJECT).",
    )
    parser.add_argument(
        "--new-project",
        action="store_true",
        help="Create --project as an empty project instead of loading it.",
    )
    parser.add_argument(
        "--workspace",
        help="Workspace root that is scanned and that result paths are relative to (default: $SAST_TRIAGE_WORKSPACE or cwd).",
    )
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS) + ["warning"],
        help="Log verbosity (default: $SAST_TRIAGE_LOG_LEVEL or info).",
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file (default: ./.env if present).",
    )
