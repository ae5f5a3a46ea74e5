"""tools/semgrep/normalize.py

Semgrep JSON -> :class:`~sast_triage.domain.finding.Finding` records.

The importer is all-or-nothing: every result path is validated before a
single finding reaches the store. One absolute (or workspace-escaping) path
aborts the whole import, not just the offending entry.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sast_triage.domain.finding import Criticality, Finding, Pattern
from sast_triage.errors import ArtifactError, ImportValidationError
from sast_triage.io.fs import read_json, read_text, stays_within, to_posix
from sast_triage.store import FindingStore

logger = logging.getLogger(__name__)

# Single source of truth for severity -> criticality. Case-sensitive.
SEVERITY_TO_CRITICALITY: Dict[str, Criticality] = {
    "INFO": Criticality.INFO,
    "INFORMATIONAL": Criticality.INFO,
    "LOW": Criticality.LOW,
    "WARNING": Criticality.MEDIUM,
    "MEDIUM": Criticality.MEDIUM,
    "ERROR": Criticality.HIGH,
    "HIGH": Criticality.HIGH,
    "CRITICAL": Criticality.CRITICAL,
}

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


class ImportMode(str, Enum):
    PROJECT = "project"
    # Dry-run results: scratch store, no persistence / refresh hooks.
    TEST = "test"


def map_semgrep_severity(sev: Any) -> Criticality:
    """Map a Semgrep severity string; anything unknown is ``UNMAPPED``."""
    if not isinstance(sev, str):
        return Criticality.UNMAPPED
    return SEVERITY_TO_CRITICALITY.get(sev, Criticality.UNMAPPED)


def rule_short_id(check_id: Any) -> str:
    """``python.lang.security.foo`` -> ``foo``."""
    return str(check_id if check_id is not None else "unknown").split(".")[-1]


def _is_absolute(raw: str) -> bool:
    return (
        PurePosixPath(raw).is_absolute()
        or PureWindowsPath(raw).is_absolute()
        or bool(PureWindowsPath(raw).drive)
    )


def validate_result_path(raw_path: Any) -> str:
    """Return the workspace-relative POSIX path, or raise ImportValidationError."""
    if not isinstance(raw_path, str) or not raw_path.strip():
        raise ImportValidationError(f"Result entry has no path: {raw_path!r}", path=None)
    if _is_absolute(raw_path):
        raise ImportValidationError(f"Path is absolute: {raw_path}", path=raw_path)
    rel = to_posix(raw_path)
    if not stays_within(rel):
        raise ImportValidationError(f"Path escapes the workspace: {raw_path}", path=raw_path)
    return rel


def _position(raw: Any) -> Tuple[int, int]:
    """``{"line": L, "col": C}`` -> (L, C), 1-based; missing values become 1."""
    if not isinstance(raw, Mapping):
        return 1, 1
    try:
        line = int(raw.get("line") or 1)
        col = int(raw.get("col") or 1)
    except (TypeError, ValueError):
        return 1, 1
    return max(line, 1), max(col, 1)


def extract_snippet(text: str, start: Tuple[int, int], end: Tuple[int, int]) -> str:
    """Slice *text* between two 1-based (line, col) positions.

    The scanner's inclusive 1-based positions become a 0-based half-open range
    ``(line-1, col-1) .. (end_line-1, end_col-1)``. Positions past the end of
    a line or of the file are clamped.
    """
    lines = _LINE_BREAK_RE.split(text)
    if start > end:
        start, end = end, start

    def _clamp(pos: Tuple[int, int]) -> Tuple[int, int]:
        li = min(max(pos[0] - 1, 0), len(lines) - 1)
        ci = min(max(pos[1] - 1, 0), len(lines[li]))
        return li, ci

    (sl, sc), (el, ec) = _clamp(start), _clamp(end)
    if sl == el:
        return lines[sl][sc:ec]
    parts = [lines[sl][sc:]]
    parts.extend(lines[sl + 1:el])
    parts.append(lines[el][:ec])
    return "\n".join(parts)


class _SourceCache:
    """Each referenced source file is read at most once per import."""

    def __init__(self, workspace_root: Path) -> None:
        self.workspace_root = workspace_root
        self._texts: Dict[str, Optional[str]] = {}

    def get(self, rel_path: str) -> Optional[str]:
        if rel_path not in self._texts:
            abs_path = self.workspace_root / rel_path
            try:
                self._texts[rel_path] = read_text(abs_path)
            except OSError as e:
                logger.warning("Cannot read %s for snippet extraction: %s", abs_path, e)
                self._texts[rel_path] = None
        return self._texts[rel_path]


def build_findings(raw_artifact: Mapping[str, Any], *, workspace_root: Path) -> List[Finding]:
    """Convert the artifact's ``results`` into unsaved findings (id 0).

    Raises ImportValidationError before reading any source if one path is bad.
    """
    results = raw_artifact.get("results") if isinstance(raw_artifact, Mapping) else None
    if not isinstance(results, list):
        return []

    entries = []
    for res in results:
        if not isinstance(res, Mapping):
            logger.warning("Skipping malformed Semgrep result: %r", res)
            continue
        entries.append((res, validate_result_path(res.get("path"))))

    sources = _SourceCache(workspace_root)
    findings: List[Finding] = []
    for res, rel_path in entries:
        start = _position(res.get("start"))
        end = _position(res.get("end"))

        text = sources.get(rel_path)
        snippet = extract_snippet(text, start, end) if text is not None else ""

        extra = res.get("extra") if isinstance(res.get("extra"), Mapping) else {}
        rule = rule_short_id(res.get("check_id"))
        message = extra.get("message")

        pattern = Pattern(
            id=rule,
            description=message if isinstance(message, str) else rule,
            criticality=map_semgrep_severity(extra.get("severity")),
            match_text=rule,
            language="semgrep",
        )
        findings.append(
            Finding(pattern=pattern, file_path=rel_path, line_number=start[0], snippet_text=snippet)
        )
    return findings


def import_results(
    raw_artifact: Mapping[str, Any],
    store: FindingStore,
    *,
    workspace_root: Path,
    mode: ImportMode = ImportMode.PROJECT,
    on_persist: Optional[Callable[[], Any]] = None,
    on_refresh: Optional[Callable[[], Any]] = None,
) -> int:
    """Import a parsed Semgrep artifact into *store*; returns the number imported.

    In project mode the persistence and refresh hooks run afterwards. In test
    mode *store* is the scratch store and no hook runs.
    """
    results = raw_artifact.get("results") if isinstance(raw_artifact, Mapping) else None
    if not isinstance(results, list):
        logger.info("The scan seems to be empty, no matches imported")
        findings: List[Finding] = []
    else:
        findings = build_findings(raw_artifact, workspace_root=workspace_root)

    stored = store.ingest(findings)

    if mode is ImportMode.PROJECT:
        logger.info("Imported %d semgrep matches.", len(stored))
        if on_persist is not None:
            on_persist()
        if on_refresh is not None:
            on_refresh()
    else:
        logger.debug("Result amount after test scan: %d", len(stored))
    return len(stored)


def import_artifact_file(
    artifact_path: Path,
    store: FindingStore,
    *,
    workspace_root: Path,
    mode: ImportMode = ImportMode.PROJECT,
    on_persist: Optional[Callable[[], Any]] = None,
    on_refresh: Optional[Callable[[], Any]] = None,
) -> int:
    """Import a Semgrep JSON file chosen by the user."""
    path = Path(artifact_path)
    try:
        raw = read_json(path)
    except (OSError, ValueError) as e:
        raise ArtifactError(f"Invalid JSON file at {path}: {e}", path=path) from e
    if not isinstance(raw, dict):
        raise ArtifactError(f"Semgrep output is not a JSON object: {path}", path=path)

    return import_results(
        raw,
        store,
        workspace_root=workspace_root,
        mode=mode,
        on_persist=on_persist,
        on_refresh=on_refresh,
    )
