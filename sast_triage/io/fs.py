"""sast_triage.io.fs

Atomic, stable filesystem helpers.

Project files are rewritten after every import and every triage action. A
process interrupted mid-write must never leave a half-written project behind,
so all writers go through a temp file + ``os.replace``.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path, PurePath, PurePosixPath
from typing import Any, Optional


def _atomic_write_text(
    path: Path,
    write_fn,
    *,
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> None:
    """Write a file atomically by writing to a temp file and os.replace()."""

    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f"{p.name}.", suffix=".tmp", dir=str(p.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline=newline) as f:
            write_fn(f)
            f.flush()
            os.fsync(f.fileno())

        os.replace(tmp_path, p)
    finally:
        # If os.replace fails, best-effort cleanup of the temp file.
        try:
            if tmp_path.exists():
                tmp_path.unlink()
        except OSError:
            pass


def write_json_atomic(
    path: Path,
    data: Any,
    *,
    indent: int = 2,
    ensure_ascii: bool = False,
    encoding: str = "utf-8",
) -> None:
    """Write pretty JSON atomically (key order preserved)."""

    def _write(f) -> None:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii)
        f.write("\n")

    _atomic_write_text(Path(path), _write, encoding=encoding)


def read_json(path: Path, *, encoding: str = "utf-8") -> Any:
    """Read JSON from disk."""

    with Path(path).open("r", encoding=encoding) as f:
        return json.load(f)


def read_text(path: Path) -> str:
    """Read a source file for snippet extraction (undecodable bytes replaced)."""

    with Path(path).open("r", encoding="utf-8", errors="replace", newline="") as f:
        return f.read()


def to_posix(path: str) -> str:
    """Normalize a relative path to forward slashes."""
    return PurePath(path.replace("\\", "/")).as_posix()


def stays_within(rel_posix: str) -> bool:
    """True if the relative POSIX path never climbs above its starting directory.

    Purely lexical: symlinks are not followed, so a link inside the root that
    points elsewhere still counts as inside.
    """
    depth = 0
    for part in PurePosixPath(rel_posix).parts:
        if part == "..":
            depth -= 1
            if depth < 0:
                return False
        else:
            depth += 1
    return True
