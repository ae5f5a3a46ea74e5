"""sast_triage.domain

Domain objects shared by the importer, the store and project persistence.

Key idea
--------
Semgrep reports results in its own JSON format. The importer converts them
into :class:`Finding` records once, so the store and everything downstream
never need to know Semgrep's field names.
"""

from __future__ import annotations

from .finding import Criticality, Finding, FindingStatus, Pattern, ScanRequest, split_csv

__all__ = [
    "Criticality",
    "Finding",
    "FindingStatus",
    "Pattern",
    "ScanRequest",
    "split_csv",
]
