"""sast_triage.wiring

This module is the **composition root** for the Python runtime.

"Composition root" means: the single place where we *assemble* the running
application from its building blocks:

- load configuration / environment variables
- configure logging
- build the high-level :class:`~sast_triage.session.TriageSession` facade

Keeping this wiring in one place prevents configuration and dependency setup
from being duplicated across entrypoints (CLI, scripts, tests).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from sast_triage.config import TriageConfig, load_config, normalize_log_level
from sast_triage.session import TriageSession
from tools.semgrep.runner import ScanListener
from tools.semgrep.spawn import Spawner

LOG_FORMAT = "[%(levelname)-5s] %(asctime)s %(name)s: %(message)s"

# Loggers owned by this project.
_LOGGER_ROOTS = ("sast_triage", "tools", "cli")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def load_env(dotenv_path: Optional[Path] = None) -> bool:
    """Load ``.env`` (explicit path, else the current directory) into os.environ."""
    path = dotenv_path or (Path.cwd() / ".env")
    if not path.exists():
        return False
    return load_dotenv(path, override=False)


def configure_logging(level: str = "info") -> None:
    """Install one stream handler on the project's logger hierarchy.

    Calling it again only changes the level (no duplicate handlers).
    """
    level = normalize_log_level(level)
    for name in _LOGGER_ROOTS:
        log = logging.getLogger(name)
        log.propagate = False
        if not any(getattr(h, "_sast_triage", False) for h in log.handlers):
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            handler._sast_triage = True  # type: ignore[attr-defined]
            log.addHandler(handler)
        log.disabled = level == "off"
        log.setLevel(_LEVELS.get(level, logging.CRITICAL))


def build_session(
    *,
    config: Optional[TriageConfig] = None,
    load_dotenv_file: bool = True,
    dotenv_path: Optional[Path] = None,
    spawner: Optional[Spawner] = None,
    listener: Optional[ScanListener] = None,
) -> TriageSession:
    """Build the session facade from the environment."""
    if load_dotenv_file:
        load_env(dotenv_path)

    cfg = config or load_config()
    configure_logging(cfg.log_level)

    session = TriageSession(cfg, spawner=spawner, listener=listener)
    if cfg.project_path is not None:
        if cfg.project_path.exists():
            session.open_project(cfg.project_path)
        else:
            # Created on first save.
            session.project_path = cfg.project_path
    return session
