import json
import unittest
from pathlib import Path

import pytest

from _fakes import semgrep_result
from sast_triage.domain.finding import Criticality, FindingStatus
from sast_triage.errors import ArtifactError, ImportValidationError
from sast_triage.store import FindingStore
from tools.semgrep.normalize import (
    ImportMode,
    extract_snippet,
    import_artifact_file,
    import_results,
    map_semgrep_severity,
    rule_short_id,
)


class TestSeverityMapping(unittest.TestCase):
    def test_table(self) -> None:
        expected = {
            "INFO": Criticality.INFO,
            "INFORMATIONAL": Criticality.INFO,
            "LOW": Criticality.LOW,
            "WARNING": Criticality.MEDIUM,
            "MEDIUM": Criticality.MEDIUM,
            "ERROR": Criticality.HIGH,
            "HIGH": Criticality.HIGH,
            "CRITICAL": Criticality.CRITICAL,
        }
        for sev, crit in expected.items():
            self.assertIs(map_semgrep_severity(sev), crit, sev)

    def test_unknown_is_unmapped(self) -> None:
        for sev in ("warning", "EXPERIMENT", "", None, 3):
            self.assertIs(map_semgrep_severity(sev), Criticality.UNMAPPED, sev)

    def test_rule_short_id(self) -> None:
        self.assertEqual(rule_short_id("python.lang.security.audit.eval-detected"), "eval-detected")
        self.assertEqual(rule_short_id("plain"), "plain")


def test_extract_snippet_single_and_multi_line() -> None:
    text = "line one\r\nabcxyz\nthird line\rlast"
    assert extract_snippet(text, (2, 1), (2, 4)) == "abc"
    assert extract_snippet(text, (2, 4), (3, 6)) == "xyz\nthird"
    # Out-of-range positions are clamped.
    assert extract_snippet(text, (4, 1), (9, 99)) == "last"


def _workspace(tmp_path: Path) -> Path:
    src = tmp_path / "src"
    src.mkdir()
    (src / "x.py").write_text("a = 1\nb = 2\nc = 3\nd = 4\nabcxyz\n", encoding="utf-8")
    return tmp_path


def test_import_end_to_end(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    store = FindingStore()
    calls = []
    raw = {
        "results": [
            semgrep_result(
                "src/x.py",
                check_id="python.lang.security.foo",
                severity="ERROR",
                message="bad",
                start=(5, 1),
                end=(5, 4),
            )
        ],
        "errors": [],
    }

    n = import_results(
        raw,
        store,
        workspace_root=root,
        on_persist=lambda: calls.append("persist"),
        on_refresh=lambda: calls.append("refresh"),
    )

    assert n == 1
    (f,) = store.findings()
    assert f.id == 1
    assert f.file_path == "src/x.py"
    assert f.line_number == 5
    assert f.snippet_text == "abc"
    assert f.criticality is Criticality.HIGH
    assert f.rule == "foo"
    assert f.pattern.id == "foo"
    assert f.pattern.description == "bad"
    assert f.status is FindingStatus.UNPROCESSED
    assert calls == ["persist", "refresh"]


def test_windows_separators_become_posix(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    store = FindingStore()
    import_results({"results": [semgrep_result("src\\x.py", start=(1, 1), end=(1, 6))]}, store, workspace_root=root)
    assert store.findings()[0].file_path == "src/x.py"
    assert store.findings()[0].snippet_text == "a = 1"


@pytest.mark.parametrize("bad", ["/etc/passwd", "../outside.py", "src/../../outside.py", "C:\\src\\x.py"])
def test_one_bad_path_aborts_the_whole_import(tmp_path: Path, bad: str) -> None:
    root = _workspace(tmp_path)
    store = FindingStore()
    raw = {"results": [semgrep_result("src/x.py"), semgrep_result(bad)]}

    with pytest.raises(ImportValidationError) as ei:
        import_results(raw, store, workspace_root=root)

    assert ei.value.path == bad
    assert len(store) == 0


def test_symlinked_directory_inside_workspace_is_accepted(tmp_path: Path) -> None:
    outside = tmp_path / "vendor-src"
    outside.mkdir()
    (outside / "lib.py").write_text("import os\nos.system(cmd)\n", encoding="utf-8")
    root = tmp_path / "ws"
    root.mkdir()
    try:
        (root / "vendor").symlink_to(outside, target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not available")
    store = FindingStore()

    n = import_results(
        {"results": [semgrep_result("vendor/lib.py", start=(2, 1), end=(2, 10))]}, store, workspace_root=root
    )

    assert n == 1
    assert store.findings()[0].file_path == "vendor/lib.py"
    assert store.findings()[0].snippet_text == "os.system"


def test_dotdot_that_stays_inside_is_accepted(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    store = FindingStore()
    import_results({"results": [semgrep_result("src/../src/x.py", start=(1, 1), end=(1, 6))]}, store, workspace_root=root)
    assert store.findings()[0].snippet_text == "a = 1"


def test_missing_source_file_gives_empty_snippet(tmp_path: Path) -> None:
    store = FindingStore()
    import_results({"results": [semgrep_result("gone.py", start=(3, 1), end=(3, 5))]}, store, workspace_root=tmp_path)
    (f,) = store.findings()
    assert f.snippet_text == ""
    assert f.line_number == 3


def test_missing_results_imports_nothing(tmp_path: Path) -> None:
    store = FindingStore()
    calls = []
    assert import_results({"errors": []}, store, workspace_root=tmp_path, on_persist=lambda: calls.append(1)) == 0
    assert import_results({"results": "nope"}, store, workspace_root=tmp_path) == 0
    assert len(store) == 0
    assert calls == [1]


def test_test_mode_skips_hooks(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    scratch = FindingStore()
    calls = []
    n = import_results(
        {"results": [semgrep_result("src/x.py")]},
        scratch,
        workspace_root=root,
        mode=ImportMode.TEST,
        on_persist=lambda: calls.append("persist"),
        on_refresh=lambda: calls.append("refresh"),
    )
    assert n == 1
    assert calls == []


def test_import_does_not_deduplicate(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    store = FindingStore()
    raw = {"results": [semgrep_result("src/x.py", start=(5, 1), end=(5, 4))]}
    import_results(raw, store, workspace_root=root)
    import_results(raw, store, workspace_root=root)
    assert [f.id for f in store.findings()] == [1, 2]


def test_import_artifact_file(tmp_path: Path) -> None:
    root = _workspace(tmp_path)
    artifact = tmp_path / "scan.json"
    artifact.write_text(json.dumps({"results": [semgrep_result("src/x.py")]}), encoding="utf-8")
    store = FindingStore()

    assert import_artifact_file(artifact, store, workspace_root=root) == 1


def test_import_artifact_file_rejects_bad_json(tmp_path: Path) -> None:
    artifact = tmp_path / "scan.json"
    artifact.write_text("{not json", encoding="utf-8")
    with pytest.raises(ArtifactError):
        import_artifact_file(artifact, FindingStore(), workspace_root=tmp_path)
    with pytest.raises(ArtifactError):
        import_artifact_file(tmp_path / "missing.json", FindingStore(), workspace_root=tmp_path)
