"""tools/semgrep/runner.py

The scan-process state machine.

    IDLE -> STARTING -> RUNNING -> DRAINING -> SUCCEEDED | FAILED -> IDLE

:class:`ScanProcessRunner` launches Semgrep through a :class:`~tools.semgrep.spawn.Spawner`,
classifies its interleaved output while it runs, and decides the outcome once
the process has closed its output.

Two rules shape the design:

* stdout is only ever a *signal*. Progress lines update the caller, noise is
  dropped, everything else is kept as diagnostics. When the JSON result starts
  streaming the runner switches to DRAINING and ignores the rest: large
  results arrive split at arbitrary pipe-buffer boundaries and are never
  reassembled from the stream.
* the outcome comes from the artifact file on disk, read once after the
  process closed. A clean exit does not make a scan successful, and an empty
  result list does not make it a failure.

Failures are returned in the :class:`ScanOutcome`, not raised; preconditions
(workspace missing, scan already running) are raised before anything starts.
"""

from __future__ import annotations

import codecs
import json
import logging
import queue
import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from sast_triage.config import DEFAULT_DIAGNOSTIC_LIMIT
from sast_triage.errors import (
    ArtifactError,
    ScanCancelledError,
    ScanContentError,
    ScanInProgressError,
    ScanProcessError,
    ScanTimeoutError,
    TriageError,
    WorkspaceError,
)

from tools.core_cmd import run_cmd

from .spawn import ProcessHandle, Spawner, default_spawner

logger = logging.getLogger(__name__)

SEMGREP_FALLBACKS = ["/opt/homebrew/bin/semgrep", "/usr/local/bin/semgrep"]


def semgrep_version(semgrep_bin: str) -> str:
    try:
        res = run_cmd([semgrep_bin, "--version"], timeout_seconds=30)
    except OSError as e:
        logger.debug("semgrep --version failed: %s", e)
        return "unknown"
    return (res.stdout or res.stderr).strip() or "unknown"


class ScanState(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# -------------------------
# Output classification
# -------------------------

# https://stackoverflow.com/questions/25245716/remove-all-ansi-colors-styles-from-strings
ANSI_RE = re.compile(r"[\u001b\u009b][\[()#;?]*(?:[0-9]{1,4}(?:;[0-9]{0,4})*)?[0-9A-ORZcf-nqry=><]")

# "  42% ━━━━━━━━━━╸━━━━━ 0:00:12" and the initial "0% -:--:--"
PROGRESS_RE = re.compile(r"(\d{1,3})%\s*.*?([-\d]{1,2}:[-\d]{2}:[-\d]{2})")

# First bytes of the --json document on stdout.
PROLOGUE_RE = re.compile(r'\{\s*"(?:version|results|errors|paths)"\s*:')

# Registry loading spinner (braille glyphs) and informational banners.
NOISE_RE = re.compile(
    r"^[\u2800-\u28ff\s]*Loading rules from registry"
    r"|SUPPLY CHAIN RULES"
    r"|Semgrep CLI"
    r"|Code rules:"
    r"|Scan Status"
    r"|^[\u2800-\u28ff\s]+$"
)

NOTHING_TO_SCAN_RE = re.compile(r"^\s*Nothing to scan\.\s*$")

_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

# A partial line longer than this is classified without waiting for its end.
MAX_PENDING_CHARS = 8192

# After a timeout or cancel, how long to wait for end of stream before closing it.
STOP_DRAIN_SECONDS = 2.0


class LineKind(str, Enum):
    PROGRESS = "progress"
    PROLOGUE = "prologue"
    NOISE = "noise"
    DIAGNOSTIC = "diagnostic"


@dataclass(frozen=True)
class ClassifiedLine:
    kind: LineKind
    text: str
    percent: Optional[int] = None
    elapsed: Optional[str] = None


def strip_ansi(text: str) -> str:
    return ANSI_RE.sub("", text)


def classify_output(line: str) -> ClassifiedLine:
    """Classify one line of (ANSI-stripped) scanner output.

    Priority: progress, JSON prologue, noise, diagnostic.
    """
    m = PROGRESS_RE.search(line)
    if m:
        return ClassifiedLine(LineKind.PROGRESS, line, percent=int(m.group(1)), elapsed=m.group(2))
    if PROLOGUE_RE.search(line):
        return ClassifiedLine(LineKind.PROLOGUE, line)
    if NOISE_RE.search(line):
        return ClassifiedLine(LineKind.NOISE, line)
    return ClassifiedLine(LineKind.DIAGNOSTIC, line)


class DiagnosticBuffer:
    """Accumulated free-text output; keeps the most recent *limit* characters."""

    def __init__(self, limit: int = DEFAULT_DIAGNOSTIC_LIMIT) -> None:
        self.limit = limit
        self._parts: List[str] = []
        self._size = 0
        self.truncated = False

    def append(self, text: str) -> None:
        if not text or self.limit <= 0:
            return
        self._parts.append(text)
        self._size += len(text)
        if self._size > self.limit * 2:
            self._compact()

    def _compact(self) -> None:
        joined = "".join(self._parts)
        if len(joined) > self.limit:
            joined = joined[-self.limit:]
            self.truncated = True
        self._parts = [joined]
        self._size = len(joined)

    @property
    def text(self) -> str:
        self._compact()
        return self._parts[0] if self._parts else ""

    def __bool__(self) -> bool:
        return self._size > 0


# -------------------------
# Events and outcome
# -------------------------


@dataclass(frozen=True)
class ScanEvent:
    """Notification for the presentation layer.

    ``kind`` is one of: ``state``, ``progress``, ``warning``, ``succeeded``,
    ``failed``. Failures travel only on ``failed``, never on ``progress``.
    """

    kind: str
    state: ScanState
    percent: Optional[int] = None
    elapsed: Optional[str] = None
    message: str = ""


ScanListener = Callable[[ScanEvent], None]


@dataclass
class ScanOutcome:
    state: ScanState
    artifact_path: Path
    exit_code: Optional[int] = None
    artifact: Optional[Dict[str, Any]] = None
    error: Optional[TriageError] = None
    diagnostics: str = ""
    elapsed_seconds: float = 0.0
    states: Tuple[ScanState, ...] = ()
    warnings: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is ScanState.SUCCEEDED

    @property
    def results(self) -> List[Any]:
        raw = (self.artifact or {}).get("results")
        return raw if isinstance(raw, list) else []


def format_artifact_errors(errors: Sequence[Any]) -> List[str]:
    """``Semgrep <level>: <message>`` for each entry of the artifact's ``errors``."""
    out: List[str] = []
    for e in errors:
        if isinstance(e, dict):
            level = e.get("level") or "error"
            msg = e.get("message") or e.get("short_msg") or e.get("long_msg") or "Unknown error"
        else:
            level, msg = "error", str(e)
        out.append(f"Semgrep {level}: {msg}")
    return out


def _with_diagnostics(message: str, diagnostics: str) -> str:
    diagnostics = diagnostics.strip()
    return f"{message}\n{diagnostics}" if diagnostics else message


# -------------------------
# Runner
# -------------------------

_DATA = "data"
_ERROR = "error"
_EOF = "eof"


class ScanProcessRunner:
    """Runs one scan at a time and reports its outcome exactly once."""

    def __init__(
        self,
        *,
        workspace_root: Path,
        spawner: Optional[Spawner] = None,
        timeout_seconds: int = 0,
        diagnostic_limit: int = DEFAULT_DIAGNOSTIC_LIMIT,
        listener: Optional[ScanListener] = None,
        poll_interval: float = 0.1,
    ) -> None:
        self.workspace_root = Path(workspace_root)
        self.spawner = spawner or default_spawner()
        self.timeout_seconds = timeout_seconds
        self.diagnostic_limit = diagnostic_limit
        self.listener = listener
        self.poll_interval = poll_interval

        self._busy = threading.Lock()
        self._state = ScanState.IDLE
        self._states: List[ScanState] = []

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    # -------------------------
    # notifications
    # -------------------------

    def _emit(self, event: ScanEvent) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception:
            # Listener failures are logged, never propagated.
            logger.exception("Scan listener raised on %s event", event.kind)

    def _set_state(self, state: ScanState) -> None:
        if state is self._state:
            return
        logger.debug("Scan state %s -> %s", self._state.value, state.value)
        self._state = state
        self._states.append(state)
        self._emit(ScanEvent(kind="state", state=state))

    # -------------------------
    # public API
    # -------------------------

    def run(
        self,
        argv: Sequence[str],
        artifact_path: Path,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> ScanOutcome:
        """Run the scanner to completion and return its outcome.

        *artifact_path* is where ``--json-output`` points; relative paths are
        taken relative to the workspace root (the scanner's working directory).
        """
        with self.claimed():
            return self.run_claimed(argv, artifact_path, cancel=cancel)

    @contextmanager
    def claimed(self) -> Iterator["ScanProcessRunner"]:
        """Hold the runner for one scan; raises ScanInProgressError if it is taken.

        Callers that prepare state the running scan also uses (scratch store,
        temporary artifact) claim first, then call :meth:`run_claimed`.
        """
        if not self._busy.acquire(blocking=False):
            raise ScanInProgressError("A scan is already running; wait for it to finish.")
        try:
            yield self
        finally:
            self._state = ScanState.IDLE
            self._busy.release()

    def run_claimed(
        self,
        argv: Sequence[str],
        artifact_path: Path,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> ScanOutcome:
        """:meth:`run` for a caller already inside :meth:`claimed`."""
        if not self.workspace_root.is_dir():
            raise WorkspaceError(f"No workspace folder is open: {self.workspace_root}")
        self._states = [ScanState.IDLE]
        return self._run(list(argv), self._absolute(artifact_path), cancel)

    def _absolute(self, artifact_path: Path) -> Path:
        p = Path(artifact_path)
        return p if p.is_absolute() else self.workspace_root / p

    # -------------------------
    # internals
    # -------------------------

    def _run(self, argv: List[str], artifact_path: Path, cancel: Optional[threading.Event]) -> ScanOutcome:
        t0 = time.monotonic()
        buffer = DiagnosticBuffer(self.diagnostic_limit)
        warnings: List[str] = []

        self._set_state(ScanState.STARTING)
        logger.debug("Executing Semgrep command: %s", " ".join(argv))

        try:
            handle = self.spawner.spawn(argv, cwd=self.workspace_root)
        except OSError as e:
            start_err = ScanProcessError(f"Failed to start Semgrep: {e}")
            return self._finish(ScanState.FAILED, artifact_path, t0, buffer, warnings, error=start_err)

        self._set_state(ScanState.RUNNING)
        stop_reason = self._pump(handle, buffer, warnings, cancel, t0)

        try:
            exit_code = handle.wait()
        finally:
            handle.close()
        logger.debug("[EXIT]: Process exited with code %s", exit_code)

        err: TriageError
        if stop_reason == "cancel":
            err = ScanCancelledError(
                _with_diagnostics("Scan cancelled.", buffer.text), exit_code=exit_code, diagnostics=buffer.text
            )
            return self._finish(ScanState.FAILED, artifact_path, t0, buffer, warnings, error=err, exit_code=exit_code)
        if stop_reason == "timeout":
            err = ScanTimeoutError(
                _with_diagnostics(f"Scan timed out after {self.timeout_seconds}s.", buffer.text),
                exit_code=exit_code,
                diagnostics=buffer.text,
            )
            return self._finish(ScanState.FAILED, artifact_path, t0, buffer, warnings, error=err, exit_code=exit_code)

        return self._complete(artifact_path, exit_code, t0, buffer, warnings)

    def _reader(self, handle: ProcessHandle, q: "queue.Queue[Tuple[str, Any]]") -> None:
        try:
            while True:
                chunk = handle.read()
                if not chunk:
                    break
                q.put((_DATA, chunk))
        except OSError as e:
            q.put((_ERROR, e))
        finally:
            q.put((_EOF, None))

    def _pump(
        self,
        handle: ProcessHandle,
        buffer: DiagnosticBuffer,
        warnings: List[str],
        cancel: Optional[threading.Event],
        t0: float,
    ) -> Optional[str]:
        """Consume output until end of stream. Returns ``cancel``/``timeout`` if stopped early."""
        q: "queue.Queue[Tuple[str, Any]]" = queue.Queue()
        reader = threading.Thread(target=self._reader, args=(handle, q), name="semgrep-output", daemon=True)
        reader.start()

        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        last_progress: Optional[Tuple[int, str]] = None
        stop_reason: Optional[str] = None
        give_up_at: Optional[float] = None
        deadline = t0 + self.timeout_seconds if self.timeout_seconds and self.timeout_seconds > 0 else None

        def handle_line(line: str) -> None:
            nonlocal last_progress
            if self._state is ScanState.DRAINING:
                return
            line = strip_ansi(line)
            if not line.strip():
                return
            c = classify_output(line)
            if c.kind is LineKind.PROGRESS:
                key = (c.percent or 0, c.elapsed or "")
                if key != last_progress:
                    last_progress = key
                    logger.debug("[PROGRESS]: %s%% Time elapsed: %s", c.percent, c.elapsed)
                    self._emit(ScanEvent(kind="progress", state=self._state, percent=c.percent, elapsed=c.elapsed))
            elif c.kind is LineKind.PROLOGUE:
                self._set_state(ScanState.DRAINING)
            elif c.kind is LineKind.NOISE:
                pass
            else:
                if NOTHING_TO_SCAN_RE.match(line):
                    msg = "Semgrep didn't find anything to scan!"
                    warnings.append(msg)
                    self._emit(ScanEvent(kind="warning", state=self._state, message=msg))
                buffer.append(line.rstrip() + "\n")

        while True:
            if stop_reason is None:
                if cancel is not None and cancel.is_set():
                    stop_reason = "cancel"
                elif deadline is not None and time.monotonic() > deadline:
                    stop_reason = "timeout"
                if stop_reason is not None:
                    logger.warning("Stopping Semgrep (%s)", stop_reason)
                    handle.terminate()
                    give_up_at = time.monotonic() + STOP_DRAIN_SECONDS
            elif give_up_at is not None and time.monotonic() > give_up_at:
                # Something outside the process group still holds the stream.
                logger.warning("Semgrep output still open after stop; closing it.")
                break

            try:
                kind, payload = q.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            if kind == _EOF:
                break
            if kind == _ERROR:
                logger.error("Child process [STREAM ERROR]: %s", payload)
                buffer.append(f"Stream error: {payload}\n")
                continue
            if self._state is ScanState.DRAINING:
                continue

            pending += decoder.decode(payload)
            parts = _LINE_BREAK_RE.split(pending)
            pending = parts.pop()
            for part in parts:
                handle_line(part)
            if pending and (PROLOGUE_RE.search(pending) or len(pending) > MAX_PENDING_CHARS):
                handle_line(pending)
                pending = ""

        pending += decoder.decode(b"", final=True)
        if pending:
            handle_line(pending)

        reader.join(timeout=1.0)
        return stop_reason

    def _complete(
        self,
        artifact_path: Path,
        exit_code: Optional[int],
        t0: float,
        buffer: DiagnosticBuffer,
        warnings: List[str],
    ) -> ScanOutcome:
        diagnostics = buffer.text
        clean_exit = exit_code == 0

        def _unusable(reason: str) -> ScanOutcome:
            if clean_exit:
                err: TriageError = ArtifactError(
                    _with_diagnostics(reason, diagnostics), path=artifact_path, diagnostics=diagnostics
                )
            else:
                err = ScanProcessError(
                    _with_diagnostics(f"Semgrep exited with code {exit_code}. {reason}", diagnostics),
                    exit_code=exit_code,
                    diagnostics=diagnostics,
                )
            return self._finish(
                ScanState.FAILED, artifact_path, t0, buffer, warnings, error=err, exit_code=exit_code
            )

        if not artifact_path.is_file():
            return _unusable(f"Output file not found: {artifact_path}")

        try:
            with artifact_path.open("r", encoding="utf-8") as f:
                artifact = json.load(f)
        except (OSError, ValueError) as e:
            return _unusable(f"Failed to read or parse Semgrep output file {artifact_path}: {e}")

        if not isinstance(artifact, dict):
            return _unusable(f"Semgrep output is not a JSON object: {artifact_path}")

        errors = artifact.get("errors")
        if isinstance(errors, list) and errors:
            err = ScanContentError(format_artifact_errors(errors))
            return self._finish(
                ScanState.FAILED,
                artifact_path,
                t0,
                buffer,
                warnings,
                error=err,
                exit_code=exit_code,
                artifact=artifact,
            )

        if not clean_exit:
            logger.warning("Semgrep exited with code %s but produced a clean artifact", exit_code)
        return self._finish(
            ScanState.SUCCEEDED, artifact_path, t0, buffer, warnings, exit_code=exit_code, artifact=artifact
        )

    def _finish(
        self,
        state: ScanState,
        artifact_path: Path,
        t0: float,
        buffer: DiagnosticBuffer,
        warnings: List[str],
        *,
        error: Optional[TriageError] = None,
        exit_code: Optional[int] = None,
        artifact: Optional[Dict[str, Any]] = None,
    ) -> ScanOutcome:
        self._set_state(state)
        outcome = ScanOutcome(
            state=state,
            artifact_path=artifact_path,
            exit_code=exit_code,
            artifact=artifact,
            error=error,
            diagnostics=buffer.text,
            elapsed_seconds=time.monotonic() - t0,
            states=tuple(self._states),
            warnings=list(warnings),
        )
        if error is not None:
            logger.error("Semgrep scan failed: %s", error)
            self._emit(ScanEvent(kind="failed", state=state, message=str(error)))
        else:
            n = len(outcome.results)
            self._emit(ScanEvent(kind="succeeded", state=state, message=f"Semgrep finished with {n} results."))
        return outcome
