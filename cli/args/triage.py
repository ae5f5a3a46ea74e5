from __future__ import annotations

import argparse


def add_triage_args(parser: argparse.ArgumentParser) -> None:
    """Register flags for the triage modes (list, set-status, comment)."""

    parser.add_argument(
        "--status",
        help=(
            "(list mode) Only show findings with this status (all|unprocessed|finding|falsePositive|saveForLater). "
            "(set-status mode) The status to set."
        ),
    )
    parser.add_argument(
        "--criticality",
        help="(list mode) all | INFO..CRITICAL | 1..5 | asc | desc (sort instead of filter).",
    )
    parser.add_argument(
        "--category",
        help="(list mode) Only show findings whose rule description matches exactly.",
    )
    parser.add_argument(
        "--rule",
        help="(list mode) Only show findings of this rule id.",
    )
    parser.add_argument(
        "--exclude-path",
        action="append",
        default=[],
        help="(list mode) Hide findings in this workspace-relative file (repeatable).",
    )
    parser.add_argument(
        "--ids",
        help="(set-status mode) Comma-separated finding ids.",
    )
    parser.add_argument(
        "--id",
        type=int,
        help="(comment mode) Finding id.",
    )
    parser.add_argument(
        "--text",
        help="(comment mode) Comment text.",
    )
