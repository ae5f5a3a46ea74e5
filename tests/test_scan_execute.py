import json
import os
import stat
from datetime import date
from pathlib import Path

import pytest

from _fakes import FakeSpawner, semgrep_result
from sast_triage.config import TriageConfig
from sast_triage.domain.finding import Pattern, ScanRequest
from sast_triage.errors import (
    OutputExistsError,
    ScanContentError,
    ScanInProgressError,
    ScannerNotFoundError,
)
from sast_triage.session import TriageSession
from tools.semgrep import TEST_ARTIFACT_NAME, execute, make_runner

DAY = date(2025, 3, 7)


@pytest.fixture()
def semgrep_bin(tmp_path: Path) -> str:
    """An executable stand-in that answers --version."""
    p = tmp_path / "bin" / "semgrep"
    p.parent.mkdir()
    p.write_text("#!/bin/sh\necho 1.50.0\n", encoding="utf-8")
    p.chmod(p.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(p)


@pytest.fixture()
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    (ws / "src").mkdir(parents=True)
    (ws / "src" / "x.py").write_text("a = 1\nb = 2\nc = 3\nd = 4\nabcxyz\n", encoding="utf-8")
    return ws


def _config(workspace: Path, semgrep_bin: str) -> TriageConfig:
    return TriageConfig(workspace_root=workspace, semgrep_bin=semgrep_bin)


ARTIFACT = {"version": "1.50.0", "results": [semgrep_result("src/x.py", start=(5, 1), end=(5, 4))], "errors": []}

pytestmark = pytest.mark.skipif(os.name != "posix", reason="uses a shell-script scanner stand-in")


def test_execute_scans_and_imports(workspace: Path, semgrep_bin: str) -> None:
    cfg = _config(workspace, semgrep_bin)
    spawner = FakeSpawner(artifact=ARTIFACT)
    session = TriageSession(cfg, spawner=spawner)
    persisted = []

    run = execute(
        ScanRequest.from_strings(config="p/python", include="src/**", exclude="tests/**"),
        config=cfg,
        store=session.store,
        scratch_store=session.scratch_store,
        runner=session.runner,
        on_persist=lambda: persisted.append(True),
        today=DAY,
    )

    assert run.imported == 1
    assert run.semgrep_version == "1.50.0"
    assert run.artifact_path == workspace / "20250307_scan_python.json"
    assert session.store.findings()[0].snippet_text == "abc"
    assert persisted == [True]

    argv = spawner.calls[0]["argv"]
    assert argv[0] == semgrep_bin
    assert argv[1:6] == ["scan", "--config", "p/python", "--strict", "--json"]
    assert argv[argv.index("--json-output") + 1] == str(workspace / "20250307_scan_python.json")
    assert argv[argv.index("--include") + 1] == "src/**"
    assert argv[argv.index("--exclude") + 1] == "tests/**"


def test_existing_output_needs_confirmation(workspace: Path, semgrep_bin: str) -> None:
    cfg = _config(workspace, semgrep_bin)
    (workspace / "out.json").write_text("{}", encoding="utf-8")
    spawner = FakeSpawner(artifact=ARTIFACT)
    session = TriageSession(cfg, spawner=spawner)
    asked = []

    with pytest.raises(OutputExistsError):
        session.scan(
            ScanRequest.from_strings(output="out.json"),
            confirm_overwrite=lambda p: asked.append(p) or False,
        )
    assert asked == [workspace / "out.json"]
    assert spawner.calls == []

    run = session.scan(ScanRequest.from_strings(output="out"), confirm_overwrite=lambda p: True)
    assert run.imported == 1
    assert json.loads((workspace / "out.json").read_text(encoding="utf-8"))["results"]


def test_dry_run_uses_scratch_store_and_cleans_up(workspace: Path, semgrep_bin: str) -> None:
    cfg = _config(workspace, semgrep_bin)
    session = TriageSession(cfg, spawner=FakeSpawner(artifact=ARTIFACT))
    session.scratch_store.add(pattern=Pattern(id="old", description="stale"), file_path="old.py", line_number=1, snippet_text="")

    run = session.scan(ScanRequest.from_strings(dry_run=True))
    run2 = session.scan(ScanRequest.from_strings(dry_run=True))

    assert run.artifact_path == workspace / TEST_ARTIFACT_NAME
    assert run2.imported == 1
    # Reset before every dry run: one scan's worth of results.
    assert len(session.scratch_store) == 1
    assert len(session.store) == 0
    assert not (workspace / TEST_ARTIFACT_NAME).exists()


def test_dry_run_cleans_up_after_failure(workspace: Path, semgrep_bin: str) -> None:
    cfg = _config(workspace, semgrep_bin)
    broken = {"results": [], "errors": [{"level": "error", "message": "Invalid rule"}]}
    session = TriageSession(cfg, spawner=FakeSpawner(artifact=broken))

    with pytest.raises(ScanContentError):
        session.scan(ScanRequest.from_strings(dry_run=True))
    assert not (workspace / TEST_ARTIFACT_NAME).exists()


def test_missing_binary(workspace: Path) -> None:
    cfg = TriageConfig(workspace_root=workspace, semgrep_bin=str(workspace / "no-such-semgrep"))
    session = TriageSession(cfg, spawner=FakeSpawner(artifact=ARTIFACT))
    with pytest.raises(ScannerNotFoundError):
        session.scan(ScanRequest())


def test_busy_runner_rejects_scan_without_side_effects(workspace: Path, semgrep_bin: str) -> None:
    cfg = _config(workspace, semgrep_bin)
    spawner = FakeSpawner(artifact=ARTIFACT)
    runner = make_runner(cfg, spawner=spawner)
    session = TriageSession(cfg)
    # State owned by the scan that is already running.
    in_flight = workspace / TEST_ARTIFACT_NAME
    in_flight.write_text('{"results": []}', encoding="utf-8")
    session.scratch_store.add(pattern=Pattern(id="r", description="d"), file_path="src/x.py", line_number=1, snippet_text="")

    with runner.claimed():
        with pytest.raises(ScanInProgressError):
            execute(
                ScanRequest.from_strings(dry_run=True),
                config=cfg,
                store=session.store,
                scratch_store=session.scratch_store,
                runner=runner,
            )

    assert in_flight.exists()
    assert len(session.scratch_store) == 1
    assert spawner.calls == []
    assert not runner.busy


def test_busy_runner_rejects_scan_before_overwrite_prompt(workspace: Path, semgrep_bin: str) -> None:
    cfg = _config(workspace, semgrep_bin)
    (workspace / "out.json").write_text("{}", encoding="utf-8")
    runner = make_runner(cfg, spawner=FakeSpawner(artifact=ARTIFACT))
    session = TriageSession(cfg)
    asked = []

    with runner.claimed():
        with pytest.raises(ScanInProgressError):
            execute(
                ScanRequest.from_strings(output="out.json"),
                config=cfg,
                store=session.store,
                scratch_store=session.scratch_store,
                runner=runner,
                confirm_overwrite=lambda p: asked.append(p) or True,
            )

    assert asked == []
    assert (workspace / "out.json").read_text(encoding="utf-8") == "{}"
