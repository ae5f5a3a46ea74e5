"""Scripted stand-ins for the scanner subprocess."""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from tools.semgrep.spawn import Spawner


class FakeHandle:
    """Replays *chunks*, then reports *exit_code*.

    With ``block=True`` the handle keeps the stream open after the chunks
    until :meth:`terminate` is called, like a scanner that hangs.
    """

    def __init__(self, chunks: Sequence[bytes], exit_code: int = 0, *, block: bool = False) -> None:
        self._chunks: List[bytes] = list(chunks)
        self.exit_code = exit_code
        self.block = block
        self.terminated = threading.Event()
        self.closed = False

    def read(self, size: int = 4096) -> bytes:
        if self._chunks:
            return self._chunks.pop(0)
        if self.block:
            self.terminated.wait(timeout=10)
        return b""

    def poll(self) -> Optional[int]:
        return self.exit_code if not self._chunks else None

    def wait(self, timeout: Optional[float] = None) -> int:
        if self.terminated.is_set():
            return -15
        return self.exit_code

    def terminate(self, grace_seconds: float = 5.0) -> None:
        self.terminated.set()

    def close(self) -> None:
        self.closed = True


class FakeSpawner(Spawner):
    """Writes *artifact* (dict, raw string, or None for "no file") where
    ``--json-output`` points, then hands out a :class:`FakeHandle`."""

    def __init__(
        self,
        *,
        chunks: Sequence[bytes] = (),
        exit_code: int = 0,
        artifact: Any = None,
        block: bool = False,
        artifact_path: Optional[Path] = None,
    ) -> None:
        self.chunks = list(chunks)
        self.exit_code = exit_code
        self.artifact = artifact
        self.block = block
        self.artifact_path = artifact_path
        self.calls: List[Dict[str, Any]] = []
        self.handle: Optional[FakeHandle] = None

    def _target(self, argv: Sequence[str], cwd: Path) -> Optional[Path]:
        if self.artifact_path is not None:
            return self.artifact_path
        argv = list(argv)
        if "--json-output" in argv:
            p = Path(argv[argv.index("--json-output") + 1])
            return p if p.is_absolute() else cwd / p
        return None

    def spawn(self, argv, *, cwd, env=None):
        self.calls.append({"argv": list(argv), "cwd": Path(cwd)})
        target = self._target(argv, Path(cwd))
        if target is not None and self.artifact is not None:
            text = self.artifact if isinstance(self.artifact, str) else json.dumps(self.artifact)
            target.write_text(text, encoding="utf-8")
        self.handle = FakeHandle(self.chunks, self.exit_code, block=self.block)
        return self.handle


class FailingSpawner(Spawner):
    def spawn(self, argv, *, cwd, env=None):
        raise FileNotFoundError(2, "No such file or directory", list(argv)[0])


def semgrep_result(
    path: str,
    *,
    check_id: str = "python.lang.security.audit.eval-detected",
    severity: str = "ERROR",
    message: str = "Detected use of eval",
    start=(1, 1),
    end=(1, 2),
) -> Dict[str, Any]:
    return {
        "check_id": check_id,
        "path": path,
        "start": {"line": start[0], "col": start[1]},
        "end": {"line": end[0], "col": end[1]},
        "extra": {"severity": severity, "message": message},
    }
