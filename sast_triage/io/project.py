"""sast_triage.io.project

Project file persistence.

A project file is a single JSON object::

    {"matches": [<finding>, ...]}

written and read wholesale. Selection state is transient and never stored.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Union

from sast_triage.domain.finding import Finding

from .fs import read_json, write_json_atomic

if TYPE_CHECKING:
    from sast_triage.store import FindingStore

logger = logging.getLogger(__name__)


def project_file_name(path: Union[str, Path]) -> Path:
    p = Path(path)
    return p if p.suffix == ".json" else p.with_name(p.name + ".json")


def new_project(path: Union[str, Path]) -> Path:
    """Create an empty project file and return its (``.json``-suffixed) path."""
    p = project_file_name(path)
    write_json_atomic(p, {})
    logger.info("New project created at %s", p)
    return p


def save_project(path: Union[str, Path], store: "FindingStore") -> Path:
    p = Path(path)
    write_json_atomic(p, {"matches": [f.to_dict() for f in store.findings()]})
    logger.debug("Project saved to disk: %s (%d matches)", p, len(store))
    return p


def load_project(path: Union[str, Path]) -> List[Finding]:
    """Read every finding from a project file.

    A file without a ``matches`` key (e.g. a freshly created project) loads as
    an empty list.
    """
    data = read_json(Path(path))
    if not isinstance(data, dict):
        raise ValueError(f"Project file is not a JSON object: {path}")
    raw = data.get("matches") or []
    if not isinstance(raw, list):
        raise ValueError(f"Project file 'matches' is not a list: {path}")
    findings = [Finding.from_dict(m) for m in raw]
    logger.debug("Loaded %d matches from %s", len(findings), path)
    return findings
