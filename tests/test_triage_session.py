import json
import logging
from pathlib import Path

import pytest

from _fakes import semgrep_result
from sast_triage.config import TriageConfig
from sast_triage.domain.finding import FindingStatus
from sast_triage.errors import FindingNotFoundError, ProjectFileError, WorkspaceError
from sast_triage.session import TriageSession
from sast_triage.store import QueryFilters
from sast_triage.wiring import configure_logging


def _artifact(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir(exist_ok=True)
    (tmp_path / "src" / "x.py").write_text("eval(a)\neval(b)\n", encoding="utf-8")
    p = tmp_path / "scan.json"
    p.write_text(
        json.dumps(
            {
                "results": [
                    semgrep_result("src/x.py", start=(1, 1), end=(1, 8)),
                    semgrep_result("src/x.py", start=(2, 1), end=(2, 8), severity="WARNING"),
                    semgrep_result("src/x.py", start=(1, 1), end=(1, 8), check_id="other.rule"),
                ]
            }
        ),
        encoding="utf-8",
    )
    return p


def _saved(session: TriageSession):
    return json.loads(session.project_path.read_text(encoding="utf-8"))["matches"]


def test_triage_flow_saves_after_every_change(tmp_path: Path) -> None:
    session = TriageSession(TriageConfig(workspace_root=tmp_path))
    session.new_project(tmp_path / "proj")

    assert session.import_artifact(_artifact(tmp_path)) == 3
    assert len(_saved(session)) == 3

    assert session.deduplicate() == 1
    assert [m["id"] for m in _saved(session)] == [1, 2]

    assert session.set_status(2, "falsePositive")
    assert _saved(session)[1]["status"] == "falsePositive"

    session.set_comment(1, "confirmed")
    assert _saved(session)[0]["comment"] == "confirmed"

    session.toggle_selection(1, True)
    session.toggle_selection(2, True)
    assert session.batch_status(FindingStatus.SAVE_FOR_LATER) == 2
    assert {m["status"] for m in _saved(session)} == {"saveForLater"}

    result = session.query(QueryFilters.parse(criticality="desc"))
    assert [f.id for f in result.findings] == [1, 2]

    reopened = TriageSession(TriageConfig(workspace_root=tmp_path))
    assert reopened.open_project(session.project_path) == 2
    assert reopened.store.findings() == session.store.findings()


def test_save_without_project_warns(tmp_path: Path, caplog) -> None:
    configure_logging("info")
    session = TriageSession(TriageConfig(workspace_root=tmp_path))
    log = logging.getLogger("sast_triage.session")
    log.addHandler(caplog.handler)
    try:
        assert session.save() is False
    finally:
        log.removeHandler(caplog.handler)
    assert "No project selected" in caplog.text


def test_test_mode_import_goes_to_scratch_store(tmp_path: Path) -> None:
    session = TriageSession(TriageConfig(workspace_root=tmp_path))
    session.new_project(tmp_path / "proj.json")
    assert session.import_artifact(_artifact(tmp_path), test_mode=True) == 3
    assert len(session.store) == 0
    assert len(session.scratch_store) == 3
    assert json.loads((tmp_path / "proj.json").read_text(encoding="utf-8")) == {}


def test_unknown_ids(tmp_path: Path) -> None:
    session = TriageSession(TriageConfig(workspace_root=tmp_path))
    assert session.set_status(5, "finding") is False
    with pytest.raises(FindingNotFoundError):
        session.set_comment(5, "x")


def test_missing_workspace(tmp_path: Path) -> None:
    session = TriageSession(TriageConfig(workspace_root=tmp_path / "missing"))
    with pytest.raises(WorkspaceError):
        session.import_artifact(tmp_path / "scan.json")


def test_broken_project_file(tmp_path: Path) -> None:
    p = tmp_path / "broken.json"
    p.write_text("[1, 2", encoding="utf-8")
    session = TriageSession(TriageConfig(workspace_root=tmp_path))
    with pytest.raises(ProjectFileError):
        session.open_project(p)
    assert session.project_path is None
