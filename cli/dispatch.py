from __future__ import annotations

import argparse

from sast_triage.session import TriageSession

from cli.commands.import_results import run_import
from cli.commands.scan import run_scan
from cli.commands.triage import run_comment, run_dedup, run_list, run_set_status
from cli.ui import choose_from_menu

_HANDLERS = {
    "scan": run_scan,
    "import": run_import,
    "list": run_list,
    "dedup": run_dedup,
    "set-status": run_set_status,
    "comment": run_comment,
}


def dispatch(args: argparse.Namespace, session: TriageSession) -> int:
    # mode selection
    mode = args.mode
    if mode is None:
        if args.artifact:
            mode = "import"
        elif args.config or args.dry_run:
            mode = "scan"
        else:
            mode = choose_from_menu(
                "Choose an action:",
                {
                    "scan": "Scan the workspace with Semgrep",
                    "import": "Import an existing Semgrep JSON file",
                    "list": "List findings",
                    "dedup": "Remove duplicate findings",
                },
            )

    return int(_HANDLERS[mode](args, session))
