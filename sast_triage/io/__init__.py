"""sast_triage.io

Filesystem contracts: atomic JSON writes and the project file format.
"""

from __future__ import annotations

from .fs import read_json, read_text, stays_within, to_posix, write_json_atomic
from .project import load_project, new_project, save_project

__all__ = [
    "load_project",
    "new_project",
    "read_json",
    "read_text",
    "save_project",
    "stays_within",
    "to_posix",
    "write_json_atomic",
]
