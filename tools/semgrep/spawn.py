"""tools/semgrep/spawn.py

Platform adapters for launching the scanner.

Semgrep only draws its live progress bar (percentage + elapsed time) when its
output is a terminal. On POSIX the child therefore gets a pseudo-terminal;
elsewhere stdout and stderr are merged into one pipe and the live progress is
lost, but diagnostics and the exit status still arrive.

Both adapters take an argument vector and never go through a shell.
"""

from __future__ import annotations

import errno
import os
import select
import subprocess
import time
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

READ_SIZE = 4096

# Semgrep lays out its progress bar for the terminal width.
PTY_ROWS = 40
PTY_COLUMNS = 160

GROUP_POLL_SECONDS = 0.05

# A blocked read wakes up this often to notice that the handle was closed.
READ_WAKEUP_SECONDS = 0.25


class ProcessHandle:
    """A running scanner: one merged output stream plus process control.

    With ``own_group`` the child leads its own process group (POSIX
    ``start_new_session``) and :meth:`terminate` signals the whole group, so
    helpers the scanner started (semgrep-core) stop with it.
    """

    def __init__(self, proc: subprocess.Popen, *, own_group: bool = False) -> None:
        self.proc = proc
        self.own_group = own_group

    @property
    def pid(self) -> int:
        return self.proc.pid

    def read(self, size: int = READ_SIZE) -> bytes:
        """Blocking read of the next chunk; ``b""`` at end of stream."""
        raise NotImplementedError

    def poll(self) -> Optional[int]:
        return self.proc.poll()

    def wait(self, timeout: Optional[float] = None) -> int:
        return self.proc.wait(timeout=timeout)

    def terminate(self, grace_seconds: float = 5.0) -> None:
        """Terminate, then kill if the process ignores the request."""
        if self.own_group:
            self._terminate_group(grace_seconds)
            return
        if self.proc.poll() is not None:
            return
        self.proc.terminate()
        try:
            self.proc.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            self.proc.kill()
            self.proc.wait()

    def _signal_group(self, sig: int) -> bool:
        """Send *sig* to the child's process group; False once the group is gone."""
        try:
            os.killpg(self.proc.pid, sig)
        except ProcessLookupError:
            return False
        return True

    def _terminate_group(self, grace_seconds: float) -> None:
        import signal

        if not self._signal_group(signal.SIGTERM):
            self.proc.poll()
            return
        deadline = time.monotonic() + grace_seconds
        try:
            self.proc.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            pass
        # The leader exiting does not mean the rest of the group did.
        while time.monotonic() < deadline and self._signal_group(0):
            time.sleep(GROUP_POLL_SECONDS)
        self._signal_group(signal.SIGKILL)
        self.proc.wait()

    def close(self) -> None:
        pass


class Spawner:
    """Starts the scanner with its working directory fixed to the workspace."""

    #: Whether the scanner will see a terminal (and emit live progress).
    interactive = False

    def spawn(self, argv: Sequence[str], *, cwd: Path, env: Optional[Mapping[str, str]] = None) -> ProcessHandle:
        raise NotImplementedError


def _child_env(env: Optional[Mapping[str, str]]) -> Dict[str, str]:
    out = os.environ.copy()
    if env:
        out.update(env)
    return out


# -------------------------
# POSIX: pseudo-terminal
# -------------------------


class _PtyHandle(ProcessHandle):
    def __init__(self, proc: subprocess.Popen, master_fd: int) -> None:
        super().__init__(proc, own_group=True)
        self._master_fd: Optional[int] = master_fd

    def read(self, size: int = READ_SIZE) -> bytes:
        while True:
            fd = self._master_fd
            if fd is None:
                return b""
            try:
                ready, _, _ = select.select([fd], [], [], READ_WAKEUP_SECONDS)
                if not ready:
                    continue
                return os.read(fd, size)
            except OSError as e:
                # Linux reports EIO once the slave side is closed (child exited);
                # EBADF means close() ran while we were waiting.
                if e.errno in (errno.EIO, errno.EBADF):
                    return b""
                raise
            except ValueError:
                # select() on a descriptor closed underneath it.
                return b""

    def close(self) -> None:
        if self._master_fd is not None:
            try:
                os.close(self._master_fd)
            finally:
                self._master_fd = None


class PtySpawner(Spawner):
    interactive = True

    def __init__(self, *, rows: int = PTY_ROWS, columns: int = PTY_COLUMNS) -> None:
        self.rows = rows
        self.columns = columns

    def _set_winsize(self, fd: int) -> None:
        import fcntl
        import struct
        import termios

        fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", self.rows, self.columns, 0, 0))

    def spawn(self, argv: Sequence[str], *, cwd: Path, env: Optional[Mapping[str, str]] = None) -> ProcessHandle:
        import pty

        child_env = _child_env(env)
        child_env.setdefault("TERM", "xterm")

        master_fd, slave_fd = pty.openpty()
        try:
            self._set_winsize(slave_fd)
            proc = subprocess.Popen(
                list(argv),
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=slave_fd,
                stderr=slave_fd,
                env=child_env,
                close_fds=True,
                start_new_session=True,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            # The child holds its own copy; keeping ours would hide EOF.
            os.close(slave_fd)
        return _PtyHandle(proc, master_fd)


# -------------------------
# Fallback: merged pipe
# -------------------------


class _PipeHandle(ProcessHandle):
    def read(self, size: int = READ_SIZE) -> bytes:
        stream = self.proc.stdout
        if stream is None:
            return b""
        try:
            return stream.read1(size)
        except ValueError:
            # close() ran while we were waiting.
            return b""

    def close(self) -> None:
        if self.proc.stdout is not None:
            self.proc.stdout.close()


class PipeSpawner(Spawner):
    interactive = False

    def spawn(self, argv: Sequence[str], *, cwd: Path, env: Optional[Mapping[str, str]] = None) -> ProcessHandle:
        own_group = os.name == "posix"
        proc = subprocess.Popen(
            list(argv),
            cwd=str(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            env=_child_env(env),
            start_new_session=own_group,
        )
        return _PipeHandle(proc, own_group=own_group)


def default_spawner() -> Spawner:
    if os.name == "posix":
        return PtySpawner()
    return PipeSpawner()
