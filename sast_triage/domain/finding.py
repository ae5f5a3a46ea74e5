"""sast_triage.domain.finding

Canonical representation of a triaged finding.

A *finding* is one reported location produced by a rule (a *pattern*). Findings
are created by the Semgrep importer, owned by :class:`sast_triage.store.FindingStore`
and written to / read from project files.

Why frozen dataclasses?
-----------------------
The store is the only component allowed to change a finding (status, comment,
selection). Making the records immutable means consumers can hold on to query
results without being able to mutate stored state behind the store's back;
the store swaps in updated copies via :func:`dataclasses.replace`.

Project files written by older releases used camelCase keys (``matchId``,
``lineContent``...). ``from_dict`` accepts both shapes so old projects keep
loading.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Mapping, Optional, Tuple


def _none_if_empty_str(v: Any) -> Any:
    if v is None:
        return None
    if isinstance(v, str) and not v.strip():
        return None
    return v


def _safe_int(v: Any) -> Optional[int]:
    if v is None:
        return None
    # bool is a subclass of int; treat as invalid.
    if isinstance(v, bool):
        return None
    try:
        return int(v)
    except Exception:
        return None


def split_csv(value: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated user value into trimmed, non-empty tokens."""
    if not value:
        return ()
    return tuple(t.strip() for t in str(value).split(",") if t.strip())


class Criticality(IntEnum):
    """Ordered criticality levels.

    The integer value is the sort rank. ``UNMAPPED`` is the sentinel for a
    scanner severity outside the known table; it still displays, it is never
    dropped.
    """

    UNMAPPED = 0
    INFO = 1
    LOW = 2
    MEDIUM = 3
    HIGH = 4
    CRITICAL = 5

    @property
    def label(self) -> str:
        return self.name

    @classmethod
    def parse(cls, value: Any) -> "Criticality":
        """Parse a stored label or rank. Unknown values become ``UNMAPPED``."""
        if isinstance(value, Criticality):
            return value
        rank = _safe_int(value)
        if rank is not None:
            try:
                return cls(rank)
            except ValueError:
                return cls.UNMAPPED
        if isinstance(value, str):
            return cls.__members__.get(value.strip().upper(), cls.UNMAPPED)
        return cls.UNMAPPED


class FindingStatus(str, Enum):
    """Triage status of a finding. Values match the project file format."""

    UNPROCESSED = "unprocessed"
    FINDING = "finding"
    FALSE_POSITIVE = "falsePositive"
    SAVE_FOR_LATER = "saveForLater"

    @classmethod
    def parse(cls, value: Any) -> "FindingStatus":
        """Accept the stored value, the member name or a kebab/snake spelling."""
        if isinstance(value, FindingStatus):
            return value
        raw = str(value or "").strip()
        for member in cls:
            if raw == member.value:
                return member
        key = raw.replace("-", "").replace("_", "").lower()
        for member in cls:
            if key in (member.value.lower(), member.name.replace("_", "").lower()):
                return member
        raise ValueError(f"Unknown status {value!r}. Valid: {[m.value for m in cls]}")


@dataclass(frozen=True)
class Pattern:
    """The rule that produced a finding."""

    id: str
    description: str
    criticality: Criticality = Criticality.UNMAPPED
    # Literal substring / regex used to highlight the snippet.
    match_text: str = ""
    language: str = "semgrep"

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Pattern":
        if not isinstance(d, Mapping):
            raise TypeError(f"Pattern.from_dict expected mapping, got {type(d)!r}")
        pid = str(d.get("id") or "")
        return cls(
            id=pid,
            description=str(d.get("description") or d.get("category") or ""),
            criticality=Criticality.parse(d.get("criticality")),
            match_text=str(d.get("match_text") or d.get("pattern") or pid),
            language=str(d.get("language") or d.get("lang") or "semgrep"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "criticality": self.criticality.label,
            "match_text": self.match_text,
            "language": self.language,
        }


@dataclass(frozen=True)
class Finding:
    """One reported location.

    ``id`` is assigned by the store at ingestion (0 = not stored yet).
    ``selected`` is transient multi-select state and is never persisted.
    """

    pattern: Pattern
    file_path: str
    line_number: int
    snippet_text: str
    id: int = 0
    status: FindingStatus = FindingStatus.UNPROCESSED
    comment: Optional[str] = None
    selected: bool = field(default=False, compare=False)

    @property
    def dedup_key(self) -> Tuple[str, int, str]:
        # Two findings with the same key are identical regardless of rule.
        return (self.file_path, self.line_number, self.snippet_text)

    @property
    def rule(self) -> str:
        return self.pattern.id

    @property
    def criticality(self) -> Criticality:
        return self.pattern.criticality

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Finding":
        """Parse a project-file record (current or legacy camelCase keys)."""
        if not isinstance(d, Mapping):
            raise TypeError(f"Finding.from_dict expected mapping, got {type(d)!r}")

        raw_pattern = d.get("pattern")
        if not isinstance(raw_pattern, Mapping):
            raise ValueError(f"finding record has no pattern: {d!r}")

        status_raw = d.get("status")
        return cls(
            id=_safe_int(d.get("id", d.get("matchId"))) or 0,
            pattern=Pattern.from_dict(raw_pattern),
            file_path=str(d.get("file_path") or d.get("path") or ""),
            line_number=_safe_int(d.get("line_number", d.get("lineNumber"))) or 0,
            snippet_text=str(d.get("snippet_text", d.get("lineContent")) or ""),
            status=FindingStatus.parse(status_raw) if status_raw else FindingStatus.UNPROCESSED,
            comment=_none_if_empty_str(d.get("comment")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "pattern": self.pattern.to_dict(),
            "file_path": self.file_path,
            "line_number": self.line_number,
            "snippet_text": self.snippet_text,
            "status": self.status.value,
        }
        if self.comment is not None:
            out["comment"] = self.comment
        return out


@dataclass(frozen=True)
class ScanRequest:
    """One user scan request. Ephemeral; never persisted."""

    config_spec: str = "auto"
    include_globs: Tuple[str, ...] = ()
    exclude_globs: Tuple[str, ...] = ()
    # Empty, an existing directory, or a file path.
    output_path: str = ""
    is_dry_run: bool = False

    @classmethod
    def from_strings(
        cls,
        *,
        config: str = "",
        include: str = "",
        exclude: str = "",
        output: str = "",
        dry_run: bool = False,
    ) -> "ScanRequest":
        """Build a request from the comma-separated strings a user types."""
        return cls(
            config_spec=config.strip() or "auto",
            include_globs=split_csv(include),
            exclude_globs=split_csv(exclude),
            output_path=output.strip(),
            is_dry_run=dry_run,
        )
