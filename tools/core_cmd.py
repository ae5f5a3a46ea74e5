"""tools/core_cmd.py

Command-execution helpers shared by the scanner adapter.

This module deliberately avoids Semgrep-specific knowledge. It provides:

* :func:`which_or_raise` - resolve executables reliably across environments.
* :func:`resolve_executable` - validate an explicit binary or fall back to a probe.
* :func:`run_cmd` - run short-lived subprocesses (no shell=True) and capture output.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from sast_triage.errors import ScannerNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CmdResult:
    exit_code: int
    elapsed_seconds: float
    command_str: str
    stdout: str
    stderr: str


def which_or_raise(bin_name: str, fallbacks: Optional[List[str]] = None) -> str:
    """Locate an executable and return its absolute path.

    ``shutil.which`` is the portable "which / where" probe; the fallbacks cover
    installs that are not on the PATH of this Python process (brew, pipx).
    """
    found = shutil.which(bin_name)
    if found:
        return found

    for candidate in fallbacks or []:
        p = Path(candidate)
        if p.exists() and os.access(str(p), os.X_OK):
            return str(p)

    raise ScannerNotFoundError(
        f"Executable '{bin_name}' not found on PATH.\n"
        f"Install it or provide an explicit path to the binary.\n"
        f"Tried fallbacks: {fallbacks or []}"
    )


def resolve_executable(
    bin_name: str,
    *,
    explicit: Optional[str] = None,
    fallbacks: Optional[List[str]] = None,
) -> str:
    """Return *explicit* if it is usable, else probe for *bin_name*.

    An explicit path that does not resolve is an error; it is never silently
    replaced by whatever happens to be on PATH.
    """
    if explicit:
        found = shutil.which(explicit)
        if found:
            return found
        raise ScannerNotFoundError(f"Configured binary is not an executable: {explicit}")
    return which_or_raise(bin_name, fallbacks=fallbacks)


def run_cmd(
    cmd: List[str],
    *,
    cwd: Optional[Path] = None,
    timeout_seconds: int = 0,
    env: Optional[Dict[str, str]] = None,
) -> CmdResult:
    """Run a subprocess and capture stdout/stderr (no ``shell=True``).

    Never raises on non-zero exit codes; a timeout is reported as exit 124.
    """
    t0 = time.time()

    # If env is provided, merge it onto the current process environment.
    env2 = None
    if env is not None:
        env2 = os.environ.copy()
        env2.update(env)

    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd else None,
            text=True,
            capture_output=True,
            timeout=timeout_seconds if timeout_seconds and timeout_seconds > 0 else None,
            env=env2,
        )
    except subprocess.TimeoutExpired as e:
        logger.warning("Command timed out after %ss: %s", timeout_seconds, " ".join(cmd))
        return CmdResult(
            exit_code=124,
            elapsed_seconds=time.time() - t0,
            command_str=" ".join(cmd),
            stdout=e.stdout if isinstance(e.stdout, str) else "",
            stderr=e.stderr if isinstance(e.stderr, str) else "",
        )

    return CmdResult(
        exit_code=proc.returncode,
        elapsed_seconds=time.time() - t0,
        command_str=" ".join(cmd),
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
    )
