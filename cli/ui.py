from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, Iterable, Optional, TextIO

from sast_triage.domain.finding import Finding
from tools.semgrep.runner import ScanEvent


def choose_from_menu(title: str, options: Dict[str, object]) -> str:
    """Show a 1..N menu of keys in 'options' and return the chosen key."""
    keys = list(options.keys())
    print("\n" + title)
    for idx, key in enumerate(keys, start=1):
        val = options[key]
        if isinstance(val, dict) and "label" in val:
            label = str(val["label"])
        else:
            label = str(val)
        print(f"[{idx}] {label} ({key})")

    while True:
        choice = input(f"Enter number (1-{len(keys)}) or Z to exit: ").strip()
        if not choice:
            print("Please enter a number or Z to exit.")
            continue
        if choice.upper() == "Z":
            print("Exiting (Z selected).")
            raise SystemExit(0)
        if choice.isdigit():
            n = int(choice)
            if 1 <= n <= len(keys):
                return keys[n - 1]
        print(f"Invalid choice. Please enter 1-{len(keys)} or Z.")


def _prompt_yes_no(prompt: str, *, default: bool = False) -> bool:
    """Prompt for a yes/no question."""
    suffix = "Y/n" if default else "y/N"
    while True:
        raw = input(f"{prompt} ({suffix}): ").strip().lower()
        if not raw:
            return default
        if raw in {"y", "yes"}:
            return True
        if raw in {"n", "no"}:
            return False
        print("Please enter y or n.")


def confirm_overwrite(path: Path) -> bool:
    return _prompt_yes_no(f"File {path} already exists. Overwrite?", default=False)


class ProgressPrinter:
    """Scan listener that keeps the progress on a single terminal line."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream or sys.stdout
        self._on_line = False

    def _newline(self) -> None:
        if self._on_line:
            self.stream.write("\n")
            self._on_line = False

    def __call__(self, event: ScanEvent) -> None:
        if event.kind == "progress":
            self.stream.write(f"\r  Scanning... {event.percent}% (elapsed {event.elapsed})")
            self.stream.flush()
            self._on_line = True
        elif event.kind == "warning":
            self._newline()
            self.stream.write(f"⚠️  {event.message}\n")
        elif event.kind in ("succeeded", "failed"):
            self._newline()


def format_finding(f: Finding) -> str:
    snippet = f.snippet_text.splitlines()[0] if f.snippet_text else ""
    comment = f"  # {f.comment}" if f.comment else ""
    return (
        f"[{f.id:>4}] {f.status.value:<13} {f.criticality.label:<9} {f.rule}  "
        f"{f.file_path}:{f.line_number}  {snippet.strip()}{comment}"
    )


def print_findings(findings: Iterable[Finding]) -> int:
    n = 0
    for f in findings:
        print(format_finding(f))
        n += 1
    return n
