from __future__ import annotations

import argparse


def add_scan_args(parser: argparse.ArgumentParser) -> None:
    """Register flags for `--mode scan` and `--mode import`."""

    parser.add_argument(
        "--config",
        default="",
        help=(
            "(scan mode) Comma-separated Semgrep configs: rule files, rule directories (recursive), "
            "registry ids like p/python, or URLs. Empty = auto."
        ),
    )
    parser.add_argument(
        "--include",
        default="",
        help="(scan mode) Comma-separated include globs, each passed as its own --include.",
    )
    parser.add_argument(
        "--exclude",
        default="",
        help="(scan mode) Comma-separated exclude globs, each passed as its own --exclude.",
    )
    parser.add_argument(
        "--output",
        default="",
        help=(
            "(scan mode) Result JSON path or an existing directory. "
            "Default: <YYYYMMDD>_scan_<config>.json in the workspace."
        ),
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="(scan mode) Test scan: results go to a scratch list, nothing is saved and the JSON is deleted.",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="(scan mode) Overwrite an existing result file without asking.",
    )
    parser.add_argument(
        "--semgrep-bin",
        help="(scan mode) Explicit Semgrep binary (default: $SAST_TRIAGE_SEMGREP_BIN or PATH).",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=None,
        help="(scan mode) Terminate Semgrep after this many seconds (0 = no timeout).",
    )
    parser.add_argument(
        "--artifact",
        help="(import mode) Semgrep JSON file to import.",
    )
