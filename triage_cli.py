#!/usr/bin/env python3
"""
CLI for Semgrep scan orchestration and finding triage.

Modes:
  scan        - run Semgrep on the workspace and import the results
  import      - import an existing Semgrep JSON file
  list        - show findings (filters: status, criticality, category, rule)
  dedup       - drop duplicate findings (same file, line and snippet)
  set-status  - set the triage status of one or more findings
  comment     - attach a comment to a finding

Usage:
  python triage_cli.py --project triage.json --mode scan --config p/python
  python triage_cli.py --project triage.json --mode scan --config rules/ --include "src/**" --dry-run
  python triage_cli.py --project triage.json --mode import --artifact 20250101_scan_auto.json
  python triage_cli.py --project triage.json --mode list --status unprocessed --criticality desc
  python triage_cli.py --project triage.json --mode set-status --ids 3,4 --status falsePositive
"""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from cli.args.base import add_base_args
from cli.args.scan import add_scan_args
from cli.args.triage import add_triage_args
from cli.dispatch import dispatch
from cli.ui import ProgressPrinter
from sast_triage.config import TriageConfig, load_config, normalize_log_level
from sast_triage.errors import ScannerNotFoundError, TriageError
from sast_triage.wiring import build_session, load_env

# Conventional "command not found" status.
EXIT_SCANNER_NOT_FOUND = 127


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run Semgrep scans and triage their findings.")
    add_base_args(parser)
    add_scan_args(parser)
    add_triage_args(parser)
    return parser.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> TriageConfig:
    cfg = load_config()
    overrides: Dict[str, Any] = {}
    if args.workspace:
        overrides["workspace_root"] = Path(args.workspace).expanduser().resolve()
    if args.log_level:
        overrides["log_level"] = normalize_log_level(args.log_level)
    if args.semgrep_bin:
        overrides["semgrep_bin"] = args.semgrep_bin
    if args.timeout is not None:
        overrides["scan_timeout_seconds"] = max(int(args.timeout), 0)
    if args.project:
        overrides["project_path"] = Path(args.project).expanduser()
    return dataclasses.replace(cfg, **overrides) if overrides else cfg


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)

    try:
        load_env(Path(args.env_file) if args.env_file else None)
        cfg = _config_from_args(args)

        session = build_session(config=cfg, load_dotenv_file=False, listener=ProgressPrinter())
        if args.new_project:
            if cfg.project_path is None:
                raise SystemExit("--new-project requires --project")
            path = session.new_project(cfg.project_path)
            print(f"✅ New project created: {path}")

        code = dispatch(args, session)
    except ScannerNotFoundError as e:
        print(f"\n❌ {e}", file=sys.stderr)
        raise SystemExit(EXIT_SCANNER_NOT_FOUND)
    except TriageError as e:
        print(f"\n❌ {e}", file=sys.stderr)
        raise SystemExit(1)

    raise SystemExit(code)


if __name__ == "__main__":
    main()
