"""sast_triage.errors

Exception taxonomy shared by the scanner adapter, the importer and the store.

The split mirrors how failures are surfaced:

* precondition errors fail fast before anything is spawned
* subprocess / artifact / content errors end a scan in the FAILED state
* import validation errors abort a whole import
* unknown-id errors from the store are mostly logged, not raised
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence

__all__ = [
    "TriageError",
    "PreconditionError",
    "ScannerNotFoundError",
    "WorkspaceError",
    "ConfigError",
    "ScanInProgressError",
    "OutputExistsError",
    "ScanProcessError",
    "ScanTimeoutError",
    "ScanCancelledError",
    "ArtifactError",
    "ScanContentError",
    "ImportValidationError",
    "FindingNotFoundError",
    "ProjectFileError",
]


class TriageError(Exception):
    """Base exception for everything raised by this project."""


# -------------------------
# Preconditions
# -------------------------


class PreconditionError(TriageError):
    """Raised before a scan or import starts when its inputs are unusable."""


class ScannerNotFoundError(PreconditionError, FileNotFoundError):
    """The scanner binary could not be resolved."""


class WorkspaceError(PreconditionError):
    """No usable workspace root (missing or not a directory)."""


class ConfigError(PreconditionError):
    """An environment / .env value could not be parsed."""


class ScanInProgressError(PreconditionError):
    """A scan was requested while another one is still running."""


class OutputExistsError(PreconditionError):
    """The artifact path exists and the user declined to overwrite it."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Output file already exists: {path}")
        self.path = path


# -------------------------
# Scan failures
# -------------------------


class ScanProcessError(TriageError):
    """The scanner process failed and left no usable artifact."""

    def __init__(self, message: str, *, exit_code: Optional[int] = None, diagnostics: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.diagnostics = diagnostics


class ScanTimeoutError(ScanProcessError):
    """The scanner ran longer than the configured timeout and was terminated."""


class ScanCancelledError(ScanProcessError):
    """The scan was cancelled by the caller and the scanner was terminated."""


class ArtifactError(TriageError):
    """The result artifact is missing, unreadable or not valid JSON."""

    def __init__(self, message: str, *, path: Optional[Path] = None, diagnostics: str = "") -> None:
        super().__init__(message)
        self.path = path
        self.diagnostics = diagnostics


class ScanContentError(TriageError):
    """The artifact was produced but reports scanner errors."""

    def __init__(self, messages: Sequence[str]) -> None:
        self.messages: List[str] = list(messages)
        super().__init__("\n ".join(self.messages))


# -------------------------
# Import / store
# -------------------------


class ImportValidationError(TriageError):
    """A result entry references a path outside the workspace."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class FindingNotFoundError(TriageError, KeyError):
    """No finding with the given id exists in the store."""

    def __init__(self, finding_id: int) -> None:
        super().__init__(f"Finding with ID {finding_id} not found.")
        self.finding_id = finding_id

    def __str__(self) -> str:
        return str(self.args[0])


class ProjectFileError(TriageError):
    """A project file could not be read or is not in the expected format."""

    def __init__(self, message: str, *, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path
