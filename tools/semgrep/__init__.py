"""tools/semgrep

Semgrep scanner package.

This package contains the implementation: command builder + process runner +
result importer. :func:`execute` strings them together for one scan request.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Optional

from sast_triage.config import TriageConfig
from sast_triage.domain.finding import ScanRequest
from sast_triage.errors import OutputExistsError
from sast_triage.store import FindingStore
from tools.core_cmd import resolve_executable

from .builder import ScanCommand, build_scan_command, resolve_output_path
from .normalize import ImportMode, import_artifact_file, import_results
from .runner import (
    SEMGREP_FALLBACKS,
    ScanEvent,
    ScanListener,
    ScanOutcome,
    ScanProcessRunner,
    ScanState,
    semgrep_version,
)
from .spawn import Spawner

logger = logging.getLogger(__name__)

# Dry runs write here (workspace root) and delete it afterwards.
TEST_ARTIFACT_NAME = "semgrep_temp_test_run.json"

__all__ = [
    "TEST_ARTIFACT_NAME",
    "ScanRun",
    "execute",
    "import_artifact_file",
    "make_runner",
]


@dataclass(frozen=True)
class ScanRun:
    command: ScanCommand
    outcome: ScanOutcome
    imported: int
    semgrep_version: str

    @property
    def artifact_path(self) -> Path:
        return self.outcome.artifact_path


def make_runner(
    config: TriageConfig,
    *,
    spawner: Optional[Spawner] = None,
    listener: Optional[ScanListener] = None,
) -> ScanProcessRunner:
    return ScanProcessRunner(
        workspace_root=config.workspace_root,
        spawner=spawner,
        timeout_seconds=config.scan_timeout_seconds,
        diagnostic_limit=config.diagnostic_limit,
        listener=listener,
    )


def _artifact_path(request: ScanRequest, workspace_root: Path, today: Optional[date]) -> Path:
    user_path = request.output_path
    if user_path and not os.path.isabs(os.path.expanduser(user_path)):
        user_path = str(workspace_root / user_path)
    elif user_path:
        user_path = os.path.expanduser(user_path)
    out = Path(resolve_output_path(request.config_spec, user_path, today=today))
    return out if out.is_absolute() else workspace_root / out


def execute(
    request: ScanRequest,
    *,
    config: TriageConfig,
    store: FindingStore,
    scratch_store: FindingStore,
    runner: Optional[ScanProcessRunner] = None,
    listener: Optional[ScanListener] = None,
    cancel: Optional[threading.Event] = None,
    confirm_overwrite: Optional[Callable[[Path], bool]] = None,
    on_persist: Optional[Callable[[], object]] = None,
    on_refresh: Optional[Callable[[], object]] = None,
    today: Optional[date] = None,
) -> ScanRun:
    """Scan the workspace and import the results.

    A dry run imports into *scratch_store* (reset first) from a temporary
    artifact that is removed afterwards, whatever the outcome. A normal run
    imports into *store* and calls the persistence / refresh hooks.

    Raises the outcome's error when the scan ends in the FAILED state.
    """
    workspace_root = config.workspace_root
    runner = runner or make_runner(config, listener=listener)
    listener = listener or runner.listener

    semgrep_bin = resolve_executable("semgrep", explicit=config.semgrep_bin, fallbacks=SEMGREP_FALLBACKS)
    version = semgrep_version(semgrep_bin)
    logger.info("Using %s (%s)", semgrep_bin, version)

    command = build_scan_command(semgrep_bin, request.config_spec, base_dir=workspace_root)
    for msg in command.warnings:
        logger.warning(msg)
        if listener is not None:
            listener(ScanEvent(kind="warning", state=ScanState.IDLE, message=msg))

    # Claim first: a rejected request leaves the running scan's scratch
    # results and artifact alone.
    with runner.claimed():
        if request.is_dry_run:
            artifact = workspace_root / TEST_ARTIFACT_NAME
            target = scratch_store
            target.reset()
            mode = ImportMode.TEST
        else:
            artifact = _artifact_path(request, workspace_root, today)
            if artifact.exists() and (confirm_overwrite is None or not confirm_overwrite(artifact)):
                raise OutputExistsError(artifact)
            target = store
            mode = ImportMode.PROJECT

        argv = command.with_output(
            str(artifact),
            include=request.include_globs,
            exclude=request.exclude_globs,
        ).argv

        try:
            outcome = runner.run_claimed(argv, artifact, cancel=cancel)
            if outcome.error is not None:
                raise outcome.error

            imported = import_results(
                outcome.artifact or {},
                target,
                workspace_root=workspace_root,
                mode=mode,
                on_persist=on_persist,
                on_refresh=on_refresh,
            )
        finally:
            if request.is_dry_run:
                try:
                    artifact.unlink()
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning("Could not remove temporary scan output %s: %s", artifact, e)

    return ScanRun(command=command, outcome=outcome, imported=imported, semgrep_version=version)
