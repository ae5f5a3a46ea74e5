"""sast_triage.config

Runtime configuration read from the environment.

Values come from ``os.environ`` after an optional ``.env`` file has been loaded
(see :func:`sast_triage.wiring.load_env`). Variables already exported in the
shell always win over the ``.env`` file.

Variables
---------
``SAST_TRIAGE_WORKSPACE``         workspace root (default: current directory)
``SAST_TRIAGE_SEMGREP_BIN``       explicit Semgrep binary (default: probe PATH)
``SAST_TRIAGE_LOG_LEVEL``         debug | info | warn | error | off
``SAST_TRIAGE_SCAN_TIMEOUT``      seconds, 0 = no timeout
``SAST_TRIAGE_DIAGNOSTIC_LIMIT``  characters of scanner diagnostics kept
``SAST_TRIAGE_PROJECT``           project file loaded at startup
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from sast_triage.errors import ConfigError

LOG_LEVELS = ("debug", "info", "warn", "error", "off")

DEFAULT_DIAGNOSTIC_LIMIT = 64 * 1024


@dataclass(frozen=True)
class TriageConfig:
    workspace_root: Path
    semgrep_bin: Optional[str] = None
    log_level: str = "info"
    scan_timeout_seconds: int = 0
    diagnostic_limit: int = DEFAULT_DIAGNOSTIC_LIMIT
    project_path: Optional[Path] = None


def _int_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None
    if value < 0:
        raise ConfigError(f"{key} must be >= 0, got {value}")
    return value


def normalize_log_level(raw: Optional[str]) -> str:
    level = (raw or "info").strip().lower()
    if level == "warning":
        level = "warn"
    if level not in LOG_LEVELS:
        raise ConfigError(f"Unknown log level {raw!r}. Valid: {list(LOG_LEVELS)}")
    return level


def load_config(env: Optional[Mapping[str, str]] = None) -> TriageConfig:
    env = os.environ if env is None else env

    workspace = (env.get("SAST_TRIAGE_WORKSPACE") or "").strip()
    project = (env.get("SAST_TRIAGE_PROJECT") or "").strip()

    return TriageConfig(
        workspace_root=Path(workspace).expanduser().resolve() if workspace else Path.cwd().resolve(),
        semgrep_bin=(env.get("SAST_TRIAGE_SEMGREP_BIN") or "").strip() or None,
        log_level=normalize_log_level(env.get("SAST_TRIAGE_LOG_LEVEL")),
        scan_timeout_seconds=_int_env(env, "SAST_TRIAGE_SCAN_TIMEOUT", 0),
        diagnostic_limit=_int_env(env, "SAST_TRIAGE_DIAGNOSTIC_LIMIT", DEFAULT_DIAGNOSTIC_LIMIT),
        project_path=Path(project).expanduser() if project else None,
    )
