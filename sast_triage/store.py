"""sast_triage.store

The in-memory finding store.

One :class:`FindingStore` instance owns the ordered list of findings for a
project (a second, scratch instance holds dry-run results). Consumers get
read views or call mutation methods; nothing else edits stored findings.

Semantics worth knowing
-----------------------
* ``ingest`` appends. It does **not** deduplicate; duplicates accumulate across
  scan runs until the user asks for :meth:`FindingStore.deduplicate`.
* ``deduplicate`` only *returns* the reduced list. The caller decides whether
  to :meth:`FindingStore.replace` the contents with it.
* Ids are process-local and monotonically increasing. They are never reused,
  not even after the finding they named is gone.
* Unknown ids are a stale UI reference, not a failure: they are logged and
  ignored (``set_comment`` is the one exception).

Mutations are serialized with a re-entrant lock so a store can be shared with
a worker thread.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import (
    AbstractSet,
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
    Union,
)

from sast_triage.domain.finding import Criticality, Finding, FindingStatus, Pattern
from sast_triage.errors import FindingNotFoundError

logger = logging.getLogger(__name__)

ALL = "all"
SORT_ASCENDING = "asc"
SORT_DESCENDING = "desc"

StatusFilter = Union[FindingStatus, str]
CriticalityFilter = Union[Criticality, str]


def deduplicate_findings(findings: Iterable[Finding]) -> List[Finding]:
    """Keep the first finding per ``(file_path, line_number, snippet_text)``.

    Later duplicates are dropped entirely; no fields are merged.
    """
    seen: Set[Tuple[str, int, str]] = set()
    out: List[Finding] = []
    for f in findings:
        key = f.dedup_key
        if key in seen:
            continue
        seen.add(key)
        out.append(f)
    return out


@dataclass(frozen=True)
class QueryFilters:
    """Filter selections, applied in field order.

    ``criticality`` is an exact level, ``"all"``, or a sort directive
    (``"asc"`` / ``"desc"``) that reorders the whole visible list.
    """

    status: StatusFilter = ALL
    criticality: CriticalityFilter = ALL
    category: str = ALL
    rule: str = ALL

    @classmethod
    def parse(
        cls,
        *,
        status: Optional[str] = None,
        criticality: Optional[str] = None,
        category: Optional[str] = None,
        rule: Optional[str] = None,
    ) -> "QueryFilters":
        """Build filters from user strings (``None`` / ``"all"`` = no filter)."""

        def _is_all(v: Optional[str]) -> bool:
            return v is None or str(v).strip().lower() in ("", ALL)

        crit: CriticalityFilter = ALL
        if not _is_all(criticality):
            c = str(criticality).strip().lower()
            if c in (SORT_ASCENDING, "ascending"):
                crit = SORT_ASCENDING
            elif c in (SORT_DESCENDING, "descending"):
                crit = SORT_DESCENDING
            else:
                crit = Criticality.parse(criticality)

        return cls(
            status=ALL if _is_all(status) else FindingStatus.parse(status),
            criticality=crit,
            category=ALL if _is_all(category) else str(category),
            rule=ALL if _is_all(rule) else str(rule),
        )


@dataclass(frozen=True)
class QueryResult:
    findings: List[Finding] = field(default_factory=list)
    # Distinct descriptions after the status/criticality filters.
    categories: List[str] = field(default_factory=list)
    # Distinct rule ids after the category filter.
    rules: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.findings)


class FindingStore:
    """Canonical, ordered collection of findings (insertion order = import order)."""

    def __init__(self, findings: Optional[Iterable[Finding]] = None) -> None:
        self._lock = threading.RLock()
        self._findings: List[Finding] = []
        self._index: Dict[int, int] = {}
        self._selected: Set[int] = set()
        self._next_id = 0
        if findings is not None:
            self.load(findings)

    # -------------------------
    # Read views
    # -------------------------

    def __len__(self) -> int:
        return len(self._findings)

    def __iter__(self) -> Iterator[Finding]:
        return iter(self.findings())

    def __contains__(self, finding_id: object) -> bool:
        return finding_id in self._index

    def findings(self) -> Tuple[Finding, ...]:
        with self._lock:
            return tuple(self._findings)

    def get(self, finding_id: int) -> Finding:
        with self._lock:
            pos = self._index.get(finding_id)
            if pos is None:
                raise FindingNotFoundError(finding_id)
            return self._findings[pos]

    def find(self, finding_id: int) -> Optional[Finding]:
        with self._lock:
            pos = self._index.get(finding_id)
            return None if pos is None else self._findings[pos]

    @property
    def selected_ids(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._selected)

    @property
    def any_selected(self) -> bool:
        return bool(self._selected)

    @property
    def last_id(self) -> int:
        return self._next_id

    # -------------------------
    # Lifecycle
    # -------------------------

    def reset(self) -> None:
        """Drop every finding and restart ids (new / closed project)."""
        with self._lock:
            self._findings = []
            self._index = {}
            self._selected = set()
            self._next_id = 0

    def load(self, findings: Iterable[Finding]) -> None:
        """Repopulate wholesale from a project file, keeping stored ids.

        Records without an id (0) or with a duplicate id get a fresh one; the
        counter continues past the highest id seen.
        """
        with self._lock:
            self.reset()
            items = [replace(f, selected=False) for f in findings]
            self._next_id = max((f.id for f in items), default=0)
            seen: Set[int] = set()
            for f in items:
                if f.id <= 0 or f.id in seen:
                    self._next_id += 1
                    f = replace(f, id=self._next_id)
                seen.add(f.id)
                self._findings.append(f)
            self._reindex()

    def replace(self, findings: Iterable[Finding]) -> None:
        """Swap in a new list (e.g. the result of :meth:`deduplicate`).

        Ids are kept and the counter is not rewound. Selections of findings
        that are gone are dropped.
        """
        with self._lock:
            new_list = list(findings)
            self._findings = new_list
            self._reindex()
            self._selected &= set(self._index)
            for pos, f in enumerate(self._findings):
                want = f.id in self._selected
                if f.selected != want:
                    self._findings[pos] = replace(f, selected=want)

    def _reindex(self) -> None:
        self._index = {f.id: pos for pos, f in enumerate(self._findings)}

    # -------------------------
    # Ingestion
    # -------------------------

    def ingest(self, findings: Iterable[Finding]) -> List[Finding]:
        """Append findings, assigning each a new id. No deduplication."""
        stored: List[Finding] = []
        with self._lock:
            for f in findings:
                self._next_id += 1
                new = replace(
                    f,
                    id=self._next_id,
                    status=f.status or FindingStatus.UNPROCESSED,
                    selected=False,
                )
                self._index[new.id] = len(self._findings)
                self._findings.append(new)
                stored.append(new)
        logger.debug("Ingested %d findings (store size %d)", len(stored), len(self._findings))
        return stored

    def add(self, *, pattern: Pattern, file_path: str, line_number: int, snippet_text: str) -> Finding:
        return self.ingest(
            [Finding(pattern=pattern, file_path=file_path, line_number=line_number, snippet_text=snippet_text)]
        )[0]

    def deduplicate(self) -> List[Finding]:
        with self._lock:
            deduped = deduplicate_findings(self._findings)
        logger.info("Deduplication completed: %d -> %d unique matches.", len(self._findings), len(deduped))
        return deduped

    # -------------------------
    # Mutation
    # -------------------------

    def _update(self, finding_id: int, **changes) -> Optional[Finding]:
        pos = self._index.get(finding_id)
        if pos is None:
            return None
        updated = replace(self._findings[pos], **changes)
        self._findings[pos] = updated
        return updated

    def set_status(self, finding_id: int, status: FindingStatus) -> bool:
        with self._lock:
            updated = self._update(finding_id, status=FindingStatus.parse(status))
        if updated is None:
            logger.warning("set_status: no finding with id %s; ignoring", finding_id)
            return False
        return True

    def toggle_selection(self, finding_id: int, selected: bool) -> bool:
        with self._lock:
            updated = self._update(finding_id, selected=bool(selected))
            if updated is not None:
                if selected:
                    self._selected.add(finding_id)
                else:
                    self._selected.discard(finding_id)
        if updated is None:
            logger.warning("toggle_selection: no finding with id %s; ignoring", finding_id)
            return False
        return True

    def clear_selection(self) -> None:
        with self._lock:
            for finding_id in list(self._selected):
                self._update(finding_id, selected=False)
            self._selected.clear()

    def apply_batch_status(self, status: FindingStatus) -> int:
        """Set *status* on every selected finding, then clear the selection."""
        status = FindingStatus.parse(status)
        with self._lock:
            ids = sorted(self._selected)
            for finding_id in ids:
                self._update(finding_id, status=status, selected=False)
            self._selected.clear()
        logger.debug("Batch status %s applied to %d findings", status.value, len(ids))
        return len(ids)

    def set_comment(self, finding_id: int, text: str) -> Finding:
        with self._lock:
            updated = self._update(finding_id, comment=text)
        if updated is None:
            raise FindingNotFoundError(finding_id)
        return updated

    # -------------------------
    # Query
    # -------------------------

    def query(
        self,
        filters: Optional[QueryFilters] = None,
        excluded_paths: AbstractSet[str] = frozenset(),
    ) -> QueryResult:
        """Filtered / sorted read view.

        Order is fixed: status -> criticality -> category -> rule -> path
        exclusion. ``categories`` and ``rules`` are collected between the
        steps so the choices offered reflect the earlier filters only.
        """
        filters = filters or QueryFilters()
        items = list(self.findings())

        if filters.status != ALL:
            status = FindingStatus.parse(filters.status)
            items = [f for f in items if f.status is status]

        crit = filters.criticality
        if crit == SORT_ASCENDING:
            items.sort(key=lambda f: int(f.criticality))
        elif crit == SORT_DESCENDING:
            items.sort(key=lambda f: int(f.criticality), reverse=True)
        elif crit != ALL:
            level = Criticality.parse(crit)
            items = [f for f in items if f.criticality is level]

        categories = sorted({f.pattern.description for f in items})
        if filters.category != ALL:
            items = [f for f in items if f.pattern.description == filters.category]

        rules = sorted({f.rule for f in items})
        if filters.rule != ALL:
            items = [f for f in items if f.rule == filters.rule]

        if excluded_paths:
            items = [f for f in items if f.file_path not in excluded_paths]

        return QueryResult(findings=items, categories=categories, rules=rules)
