"""sast_triage.session

This module defines a *single, high-level* object that represents the tool's
primary capabilities: scan, import, and triage.

The :class:`TriageSession` facade gives callers (CLI, scripts, tests) one
obvious entrypoint and keeps the rule "every mutation is followed by a
project save" in one place. It owns:

- the project :class:`~sast_triage.store.FindingStore`
- a scratch store for dry-run results (never saved)
- one :class:`~tools.semgrep.runner.ScanProcessRunner`, so a second scan
  started while one is running is rejected
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import AbstractSet, Callable, Optional, Union

from sast_triage.config import TriageConfig
from sast_triage.domain.finding import Finding, FindingStatus, ScanRequest
from sast_triage.errors import ProjectFileError, WorkspaceError
from sast_triage.io.project import load_project, new_project, save_project
from sast_triage.store import FindingStore, QueryFilters, QueryResult
from tools.semgrep import ScanRun, execute, import_artifact_file, make_runner
from tools.semgrep.normalize import ImportMode
from tools.semgrep.runner import ScanListener
from tools.semgrep.spawn import Spawner

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class TriageSession:
    """High-level facade over the store, the project file and the scanner."""

    def __init__(
        self,
        config: TriageConfig,
        *,
        spawner: Optional[Spawner] = None,
        listener: Optional[ScanListener] = None,
    ) -> None:
        self.config = config
        self.store = FindingStore()
        self.scratch_store = FindingStore()
        self.project_path: Optional[Path] = None
        self.runner = make_runner(config, spawner=spawner, listener=listener)

    @property
    def workspace_root(self) -> Path:
        return self.config.workspace_root

    def _require_workspace(self) -> Path:
        root = self.workspace_root
        if not root.is_dir():
            raise WorkspaceError(f"No workspace folder is open: {root}")
        return root

    # -------------------------
    # Project file
    # -------------------------

    def open_project(self, path: PathLike) -> int:
        """Load a project file into the store; returns the number of findings."""
        p = Path(path)
        try:
            findings = load_project(p)
        except (OSError, ValueError, TypeError) as e:
            raise ProjectFileError(f"Cannot load project {p}: {e}", path=p) from e
        self.store.load(findings)
        self.project_path = p
        logger.info("Project loaded: %s (%d matches)", p, len(self.store))
        return len(self.store)

    def new_project(self, path: PathLike) -> Path:
        self.project_path = new_project(path)
        self.store.reset()
        return self.project_path

    def save(self) -> bool:
        if self.project_path is None:
            logger.warning("No project selected; results are kept in memory only.")
            return False
        save_project(self.project_path, self.store)
        return True

    # -------------------------
    # Scan / import
    # -------------------------

    def scan(
        self,
        request: ScanRequest,
        *,
        cancel: Optional[threading.Event] = None,
        confirm_overwrite: Optional[Callable[[Path], bool]] = None,
        on_refresh: Optional[Callable[[], object]] = None,
    ) -> ScanRun:
        self._require_workspace()
        return execute(
            request,
            config=self.config,
            store=self.store,
            scratch_store=self.scratch_store,
            runner=self.runner,
            cancel=cancel,
            confirm_overwrite=confirm_overwrite,
            on_persist=self.save,
            on_refresh=on_refresh,
        )

    def import_artifact(self, artifact_path: PathLike, *, test_mode: bool = False) -> int:
        root = self._require_workspace()
        if test_mode:
            self.scratch_store.reset()
            return import_artifact_file(
                Path(artifact_path), self.scratch_store, workspace_root=root, mode=ImportMode.TEST
            )
        return import_artifact_file(Path(artifact_path), self.store, workspace_root=root, on_persist=self.save)

    # -------------------------
    # Triage
    # -------------------------

    def deduplicate(self) -> int:
        """Drop duplicate findings and save; returns how many were removed."""
        before = len(self.store)
        self.store.replace(self.store.deduplicate())
        self.save()
        return before - len(self.store)

    def set_status(self, finding_id: int, status: Union[FindingStatus, str]) -> bool:
        changed = self.store.set_status(finding_id, FindingStatus.parse(status))
        if changed:
            self.save()
        return changed

    def set_comment(self, finding_id: int, text: str) -> Finding:
        updated = self.store.set_comment(finding_id, text)
        self.save()
        return updated

    def toggle_selection(self, finding_id: int, selected: bool) -> bool:
        return self.store.toggle_selection(finding_id, selected)

    def clear_selection(self) -> None:
        self.store.clear_selection()

    def batch_status(self, status: Union[FindingStatus, str]) -> int:
        n = self.store.apply_batch_status(FindingStatus.parse(status))
        if n:
            self.save()
        return n

    def query(
        self,
        filters: Optional[QueryFilters] = None,
        excluded_paths: AbstractSet[str] = frozenset(),
    ) -> QueryResult:
        return self.store.query(filters, excluded_paths)
