# Rich console output: findings grouped by file, colored by severity.

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from webaudit.findings.models import ErrorSummary, Finding
from webaudit.rules.registry import RuleRegistry
from webaudit.severity import Severity

SEVERITY_STYLE = {
    Severity.CRITICAL: "bold white on red",
    Severity.VULNERABLE: "bold red",
    Severity.WARNING: "bold yellow",
    Severity.INFO: "bold blue",
}

DEFAULT_SEVERITY_STYLE = "bold white"


def _severity_style(severity: Severity) -> str:
    return SEVERITY_STYLE.get(severity, DEFAULT_SEVERITY_STYLE)


def shorten_path(path: str | Path, root: Optional[Path] = None) -> str:
    """Display path relative to the scan root when possible."""
    p = Path(path)
    if root is not None:
        try:
            return p.relative_to(root).as_posix()
        except ValueError:
            pass
    return p.as_posix()


def print_findings(
    findings: Sequence[Finding],
    summary: Optional[ErrorSummary] = None,
    analyzed_files: Sequence[Path] | None = None,
    registry: Optional[RuleRegistry] = None,
    verbose: bool = False,
    root: Optional[Path] = None,
    console: Optional[Console] = None,
) -> None:
    """
    Print findings using Rich, grouped by file with snippets.

    With verbose and a registry, each rule's remediation text is shown once
    per file. If analyzed_files is given, a safe/unsafe file table follows.
    """
    console = console or Console()

    if not findings and not analyzed_files:
        console.print(
            Panel(
                "[green]No issues found.[/green]",
                title="webaudit",
                border_style="green",
                box=box.ROUNDED,
            )
        )
        _print_summary(findings, summary, console)
        return

    by_file: dict[str, list[Finding]] = {}
    for f in findings:
        by_file.setdefault(f.location.path.as_posix(), []).append(f)

    for path in sorted(by_file):
        file_findings = by_file[path]

        console.print()
        console.print(Panel(
            f"[bold cyan]{shorten_path(path, root)}[/bold cyan]",
            box=box.SIMPLE_HEAD,
            border_style="blue",
            padding=(0, 1),
        ))

        table = Table(
            show_header=True,
            header_style="bold magenta",
            box=box.SIMPLE,
            padding=(0, 1),
            expand=False,
        )
        table.add_column("Line", justify="right", style="dim", width=5)
        table.add_column("Col", justify="right", style="dim", width=4)
        table.add_column("Severity", width=11)
        table.add_column("Rule", width=34)
        table.add_column("Message", style="white")

        for f in file_findings:
            loc = f.location
            table.add_row(
                str(loc.line),
                str(loc.column),
                Text(f.severity.value.upper(), style=_severity_style(f.severity)),
                Text(f"[{f.rule_id}]", style="dim"),
                Text(f.message),
            )
        console.print(table)

        for f in file_findings:
            if f.location.snippet:
                console.print(f"  [dim]|--[/dim] {f.location.line}: {escape(f.location.snippet.strip())}", highlight=False)
        console.print()

        if verbose and registry is not None:
            seen_rules: set[str] = set()
            for f in file_findings:
                if f.rule_id in seen_rules:
                    continue
                seen_rules.add(f.rule_id)
                rule = registry.get(f.rule_id)
                if rule is not None and rule.remediation:
                    console.print(f"  [dim]\\[Fix][/dim] \\[{f.rule_id}] {escape(rule.remediation)}", highlight=False)
            if seen_rules:
                console.print()

    if analyzed_files:
        _print_file_summary_table(findings, analyzed_files, console, root)

    _print_summary(findings, summary, console)


def _print_file_summary_table(
    findings: Sequence[Finding],
    analyzed_files: Sequence[Path],
    console: Console,
    root: Optional[Path] = None,
) -> None:
    """Print a table of files with and without findings."""
    by_path: dict[str, int] = {}
    for f in findings:
        key = f.location.path.as_posix()
        by_path[key] = by_path.get(key, 0) + 1

    table = Table(
        title="Files Summary",
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        padding=(0, 1),
    )
    table.add_column("File", style="white")
    table.add_column("Status", width=10)
    table.add_column("Findings", justify="right", width=8)

    keys = sorted(p.as_posix() for p in analyzed_files)
    for key in (k for k in keys if k in by_path):
        table.add_row(shorten_path(key, root), Text("UNSAFE", style="bold red"), str(by_path[key]))
    for key in (k for k in keys if k not in by_path):
        table.add_row(shorten_path(key, root), Text("OK", style="bold green"), "0")

    console.print()
    console.print(Panel(table, border_style="cyan", box=box.ROUNDED))


def _print_summary(findings: Sequence[Finding], summary: Optional[ErrorSummary], console: Console) -> None:
    """Print a compact severity summary, plus skipped files and rule errors."""
    by_severity: dict[Severity, int] = {}
    for f in findings:
        by_severity[f.severity] = by_severity.get(f.severity, 0) + 1

    total = len(findings)
    summary_parts = [f"[bold]{total} finding{'s' if total != 1 else ''}[/bold]"]
    for sev in sorted(by_severity, reverse=True):
        summary_parts.append(f"[{_severity_style(sev)}]{by_severity[sev]} {sev.value}[/]")
    if summary is not None and summary.warning_count:
        summary_parts.append(f"[yellow]{summary.warning_count} scan warning(s)[/]")

    console.print()
    console.print(
        Panel(
            " | ".join(summary_parts),
            title="Summary",
            border_style="yellow" if total > 0 else "green",
            box=box.ROUNDED,
        )
    )

    if summary is not None:
        for skipped in summary.skipped_files:
            console.print(f"[yellow]skipped[/yellow] {skipped.path}: {escape(skipped.reason)}", highlight=False)
        for err in summary.rule_errors:
            console.print(
                f"[yellow]rule error[/yellow] {err.rule_id} at {err.path}:{err.line}: {escape(err.reason)}",
                highlight=False,
            )


def print_compact(
    findings: Sequence[Finding],
    summary: Optional[ErrorSummary] = None,
    files_scanned: int = 0,
    root: Optional[Path] = None,
    console: Optional[Console] = None,
) -> None:
    """One line per finding under a bold file name, then a one-line footer."""
    console = console or Console()

    if not findings:
        console.print(f"[green]No issues found ({files_scanned} files)[/green]", highlight=False)
    else:
        by_file: dict[str, list[Finding]] = {}
        for f in findings:
            by_file.setdefault(f.location.path.as_posix(), []).append(f)

        for path in sorted(by_file):
            console.print(Text(shorten_path(path, root), style="bold"))
            for f in by_file[path]:
                line = Text("  ")
                line.append(f.severity.value.upper(), style=_severity_style(f.severity))
                line.append(f" L{f.location.line}", style="dim")
                line.append(f" {f.rule_id}", style="cyan")
                line.append(f" {f.message}")
                console.print(line)
            console.print()

        console.print(Text("-" * 60, style="dim"))
        counts = Text()
        for sev in sorted(Severity, reverse=True):
            n = sum(1 for f in findings if f.severity is sev)
            if n:
                counts.append(f"{n} {sev.value} ", style=_severity_style(sev))
        counts.append(f"| {files_scanned} files", style="dim")
        console.print(counts)

    if summary is not None and summary.warning_count:
        console.print(f"[yellow]{summary.warning_count} scan warning(s)[/yellow]", highlight=False)
