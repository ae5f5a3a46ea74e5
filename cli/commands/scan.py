from __future__ import annotations

from sast_triage.domain.finding import ScanRequest
from sast_triage.session import TriageSession

from cli.ui import confirm_overwrite


def run_scan(args, session: TriageSession) -> int:
    req = ScanRequest.from_strings(
        config=args.config or "",
        include=args.include or "",
        exclude=args.exclude or "",
        output=args.output or "",
        dry_run=bool(args.dry_run),
    )

    print("\n🚀 Running scan")
    print(f"  Workspace : {session.workspace_root}")
    print(f"  Config    : {req.config_spec}")
    if req.is_dry_run:
        print("  (dry-run: results are not saved)")

    run = session.scan(
        req,
        confirm_overwrite=(lambda _p: True) if args.yes else confirm_overwrite,
    )

    print(f"  Command   : {run.command.command_str}")

    if req.is_dry_run:
        print(f"\n✅ Test scan completed: {run.imported} results (not saved).")
    else:
        print(f"\n✅ Scan completed: {run.imported} results imported from {run.artifact_path}")
    return 0
