# Markdown report: summary counts, then one findings table per severity.

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

from webaudit.findings.models import ErrorSummary, Finding
from webaudit.reporting.console import shorten_path
from webaudit.severity import Severity

SEVERITY_ORDER = sorted(Severity, reverse=True)


def _escape_cell(value: str) -> str:
    """Escape backslashes, then pipes, so a value stays inside its table cell."""
    return value.replace("\\", "\\\\").replace("|", "\\|").replace("\n", " ")


def _findings_table(findings: Sequence[Finding], root: Optional[Path]) -> list[str]:
    lines = [
        "| Rule | File | Line | Message |",
        "|------|------|------|---------|",
    ]
    for f in findings:
        lines.append(
            f"| `{_escape_cell(f.rule_id)}` "
            f"| {_escape_cell(shorten_path(f.location.path, root))} "
            f"| {f.location.line} "
            f"| {_escape_cell(f.message)} |"
        )
    return lines


def format_markdown(
    findings: Sequence[Finding],
    summary: Optional[ErrorSummary] = None,
    files_scanned: int = 0,
    root: Optional[Path] = None,
) -> str:
    """Render findings as a Markdown report, most severe section first."""
    counts = {sev: 0 for sev in SEVERITY_ORDER}
    for f in findings:
        counts[f.severity] += 1

    lines = [
        "# webaudit Security Scan Report",
        "",
        "## Summary",
        "",
        f"- **Files Scanned:** {files_scanned}",
        f"- **Total Issues:** {len(findings)}",
    ]
    lines.extend(f"- **{sev.value.capitalize()}:** {counts[sev]}" for sev in SEVERITY_ORDER)
    if summary is not None and summary.warning_count:
        lines.append(f"- **Scan Warnings:** {summary.warning_count}")
    lines.append("")

    if not findings:
        lines.append("**No security issues found.**")
    else:
        lines.extend(["## Findings", ""])
        for sev in SEVERITY_ORDER:
            group = [f for f in findings if f.severity is sev]
            if not group:
                continue
            lines.extend([f"### {sev.value.capitalize()}", ""])
            lines.extend(_findings_table(group, root))
            lines.append("")

    if summary is not None and summary.warning_count:
        lines.extend(["## Scan Warnings", ""])
        lines.extend(
            f"- skipped `{_escape_cell(shorten_path(s.path, root))}`: {_escape_cell(s.reason)}"
            for s in summary.skipped_files
        )
        lines.extend(
            f"- rule error `{err.rule_id}` at `{_escape_cell(shorten_path(err.path, root))}:{err.line}`: "
            f"{_escape_cell(err.reason)}"
            for err in summary.rule_errors
        )
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"
