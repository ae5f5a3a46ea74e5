from __future__ import annotations

from pathlib import Path

from sast_triage.session import TriageSession


def run_import(args, session: TriageSession) -> int:
    if not args.artifact:
        raise SystemExit("import mode requires --artifact <semgrep.json>")

    path = Path(args.artifact).expanduser()
    n = session.import_artifact(path)
    print(f"✅ Imported {n} Semgrep results from {path}")
    if session.project_path is None:
        print("⚠️  No project selected: results were not saved (pass --project).")
    return 0
