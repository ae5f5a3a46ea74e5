from __future__ import annotations

from typing import List

from sast_triage.domain.finding import FindingStatus, split_csv
from sast_triage.session import TriageSession
from sast_triage.store import QueryFilters

from cli.ui import print_findings


def _parse_ids(raw: str) -> List[int]:
    ids: List[int] = []
    for part in split_csv(raw):
        if not part.isdigit():
            raise SystemExit(f"Invalid finding id: {part!r}")
        ids.append(int(part))
    return ids


def _parse_status(raw: str) -> FindingStatus:
    try:
        return FindingStatus.parse(raw)
    except ValueError as e:
        raise SystemExit(str(e)) from None


def _warn_unsaved(session: TriageSession) -> None:
    if session.project_path is None:
        print("⚠️  No project selected: changes were not saved (pass --project).")


def run_list(args, session: TriageSession) -> int:
    try:
        filters = QueryFilters.parse(
            status=args.status,
            criticality=args.criticality,
            category=args.category,
            rule=args.rule,
        )
    except ValueError as e:
        raise SystemExit(str(e)) from None

    result = session.query(filters, excluded_paths=frozenset(args.exclude_path or []))
    n = print_findings(result.findings)
    print(f"\n{n} of {len(session.store)} findings shown.")
    if result.categories:
        print(f"  Categories : {len(result.categories)}")
    if result.rules:
        print(f"  Rules      : {', '.join(result.rules)}")
    return 0


def run_dedup(args, session: TriageSession) -> int:
    removed = session.deduplicate()
    print(f"✅ Deduplication completed: removed {removed}, {len(session.store)} unique findings left.")
    _warn_unsaved(session)
    return 0


def run_set_status(args, session: TriageSession) -> int:
    if not args.ids or not args.status:
        raise SystemExit("set-status mode requires --ids and --status")
    status = _parse_status(args.status)
    ids = _parse_ids(args.ids)

    if len(ids) == 1:
        changed = 1 if session.set_status(ids[0], status) else 0
    else:
        session.clear_selection()
        for finding_id in ids:
            session.toggle_selection(finding_id, True)
        changed = session.batch_status(status)

    print(f"✅ Status '{status.value}' set on {changed} of {len(ids)} findings.")
    _warn_unsaved(session)
    return 0 if changed == len(ids) else 1


def run_comment(args, session: TriageSession) -> int:
    if args.id is None or args.text is None:
        raise SystemExit("comment mode requires --id and --text")
    f = session.set_comment(args.id, args.text)
    print(f"✅ Comment saved on finding {f.id}.")
    _warn_unsaved(session)
    return 0
