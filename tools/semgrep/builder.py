"""tools/semgrep/builder.py

Semgrep command construction and artifact naming.

Both functions are pure apart from read-only filesystem checks (is this config
token a file? a directory? does the output location exist?). Nothing is
executed here.

The command is built as an argument vector, never a shell string: config
paths with spaces or quotes reach Semgrep unchanged.
"""

from __future__ import annotations

import os
import re
import shlex
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from sast_triage.domain.finding import split_csv

DEFAULT_CONFIG = "auto"

# "https://...", "git+ssh://..." and registry ids like "p/python", "r/python.lang...".
_URL_RE = re.compile(r"^\w[\w+.-]*://")
_REGISTRY_RE = re.compile(r"^[pr]/")
_NON_WORD_RE = re.compile(r"\W+")

# Only the first few config tokens go into a generated filename.
MAX_NAME_FRAGMENTS = 3


@dataclass(frozen=True)
class ScanCommand:
    """A Semgrep invocation plus the non-fatal warnings produced while building it."""

    argv: Tuple[str, ...]
    warnings: Tuple[str, ...] = field(default=())

    @property
    def command_str(self) -> str:
        return shlex.join(self.argv)

    def with_output(
        self,
        output_path: str,
        *,
        include: Sequence[str] = (),
        exclude: Sequence[str] = (),
    ) -> "ScanCommand":
        """Append ``--json-output`` and one ``--include`` / ``--exclude`` per glob."""
        argv: List[str] = list(self.argv)
        argv += ["--json-output", str(output_path)]
        for pattern in include:
            argv += ["--include", pattern]
        for pattern in exclude:
            argv += ["--exclude", pattern]
        return ScanCommand(argv=tuple(argv), warnings=self.warnings)


def _is_remote_config(token: str) -> bool:
    return bool(_URL_RE.match(token) or _REGISTRY_RE.match(token))


def find_all_files(directory: Path) -> List[Path]:
    """Every file below *directory*, depth-first, in filesystem enumeration order."""
    files: List[Path] = []
    with os.scandir(directory) as it:
        for entry in it:
            p = Path(entry.path)
            if entry.is_dir():
                files.extend(find_all_files(p))
            else:
                files.append(p)
    return files


def _resolve(token: str, base_dir: Optional[Path]) -> Path:
    p = Path(token).expanduser()
    if base_dir is not None and not p.is_absolute():
        return base_dir / p
    return p


def build_scan_command(
    semgrep_bin: str,
    config_spec: str,
    *,
    base_dir: Optional[Path] = None,
) -> ScanCommand:
    """Build ``<bin> scan --config ... --strict --json``.

    Each comma-separated token of *config_spec* becomes:

    * an existing file -> one ``--config <file>``
    * an existing directory -> one ``--config <file>`` per file below it (recursive)
    * otherwise a URL or registry id (``p/...``, ``r/...``) -> passed through as is
    * anything else -> passed through best-effort, with a warning unless it is ``auto``

    Relative tokens are resolved against *base_dir* (the workspace root, which
    is also the scanner's working directory).
    """
    warnings: List[str] = []
    config_args: List[str] = []

    for token in split_csv(config_spec) or (DEFAULT_CONFIG,):
        candidate = _resolve(token, base_dir)
        if candidate.is_file():
            config_args += ["--config", str(candidate)]
        elif candidate.is_dir():
            for f in find_all_files(candidate):
                config_args += ["--config", str(f)]
        elif _is_remote_config(token):
            config_args += ["--config", token]
        else:
            if token != DEFAULT_CONFIG:
                warnings.append(
                    f'The config value "{token}" was not recognized as a local file, directory, '
                    f"or a valid Semgrep registry/URL. This may cause Semgrep to fail. "
                    f"Please check your config value."
                )
            config_args += ["--config", token]

    argv = [semgrep_bin, "scan", *config_args, "--strict", "--json"]
    return ScanCommand(argv=tuple(argv), warnings=tuple(warnings))


# -------------------------
# Output artifact naming
# -------------------------


def _name_fragment(token: str) -> str:
    if token == DEFAULT_CONFIG:
        return DEFAULT_CONFIG
    if _URL_RE.match(token):
        # Only the part after the last slash names the rule set.
        tail = token.rstrip("/").rsplit("/", 1)[-1]
        return _NON_WORD_RE.sub("_", tail or token)
    # Local paths and registry ids: basename only.
    tail = re.sub(r"^.*[\\/]", "", token)
    return _NON_WORD_RE.sub("_", tail or token)


def default_output_filename(config_spec: str, *, today: Optional[date] = None) -> str:
    """``<YYYYMMDD>_scan_<fragment>.json`` from up to three config tokens."""
    today = today or datetime.now(timezone.utc).date()
    tokens: Iterable[str] = split_csv(config_spec) or (DEFAULT_CONFIG,)
    fragment = "__".join(_name_fragment(t) for t in list(tokens)[:MAX_NAME_FRAGMENTS])
    return f"{today.strftime('%Y%m%d')}_scan_{fragment}.json"


def resolve_output_path(
    config_spec: str,
    user_path: Optional[str],
    *,
    today: Optional[date] = None,
) -> str:
    """Turn the user's output choice into a concrete artifact path.

    * empty -> the default filename (relative)
    * an existing directory -> directory / default filename
    * anything else -> the path itself, with ``.json`` appended if missing

    Resolving an already-resolved path returns it unchanged.
    """
    default_name = default_output_filename(config_spec, today=today)
    if not user_path or not user_path.strip():
        return default_name

    user_path = user_path.strip()
    if os.path.isdir(user_path):
        return os.path.join(user_path, default_name)

    return user_path if user_path.endswith(".json") else f"{user_path}.json"
