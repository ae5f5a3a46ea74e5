"""sast_triage

Core package for triaging static-analysis findings.

Why this exists
---------------
The scanner adapter under ``tools/semgrep`` knows how to launch Semgrep and
how to read its JSON output. Everything that outlives a single scan lives
here instead:

* domain types (patterns, findings, statuses, criticality)
* the in-memory finding store and its query semantics
* project persistence and small filesystem helpers
* configuration / logging wiring

The CLI and the scanner adapter are *thin composition roots* on top of it.
"""

from __future__ import annotations

__version__ = "0.4.0"
