"""
Typer CLI entry point and orchestration of the scan pipeline.

    webaudit scan TARGET     scan a file or directory
    webaudit rules           list the built-in rule catalog
    webaudit schema          print the JSON Schema of .webauditrc.json

Exit codes for scan: 0 when no finding reaches the fail threshold, 1 when
one does, 2 when the configuration or the scan target is invalid.
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from webaudit.aggregator import exceeds_threshold, filter_by_threshold
from webaudit.config import (
    CliOverrides,
    EffectiveConfig,
    config_json_schema,
    default_config,
    discover_config_file,
    load_config_file,
    resolve,
)
from webaudit.engine import scan_files
from webaudit.errors import ConfigValidationError, ScanRootError
from webaudit.reporting.console import print_compact, print_findings
from webaudit.reporting.markdown import format_markdown
from webaudit.rules.registry import RuleRegistry
from webaudit.severity import Severity
from webaudit.traversal import find_source_files

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_CONFIG_ERROR = 2


class OutputFormat(str, Enum):
    table = "table"
    json = "json"
    markdown = "markdown"
    compact = "compact"


app = typer.Typer(
    help="webaudit - security misconfiguration scanner for JavaScript/TypeScript web apps.",
    no_args_is_help=True,
)
err_console = Console(stderr=True)


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.INFO if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=verbose)],
        force=True,
    )


def _parse_severity(value: Optional[str], option: str) -> Optional[Severity]:
    if value is None:
        return None
    try:
        return Severity.parse(value)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint=option) from e


def _load_config(
    target: Path,
    config_path: Optional[Path],
    overrides: CliOverrides,
    registry: RuleRegistry,
) -> EffectiveConfig:
    if config_path is None and target.exists():
        config_path = discover_config_file(target)
    raw = load_config_file(config_path) if config_path is not None else None
    if config_path is not None:
        logger.info("Loaded configuration from %s", config_path)
    return resolve(default_config(registry), raw, overrides, registry)


def _fail(message: str) -> NoReturn:
    err_console.print(f"[bold red]error:[/bold red] {escape(message)}", highlight=False)
    raise typer.Exit(code=EXIT_CONFIG_ERROR)


@app.command()
def scan(
    target: Path = typer.Argument(..., help="JS/TS file or project directory to scan."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Config file (default: .webauditrc.json in TARGET)."
    ),
    enable: Optional[List[str]] = typer.Option(None, "--enable", help="Enable a rule by id."),
    disable: Optional[List[str]] = typer.Option(None, "--disable", help="Disable a rule by id."),
    fail_threshold: Optional[str] = typer.Option(
        None, "--fail-threshold", help="Exit 1 when a finding is at least this severe."
    ),
    min_severity: Optional[str] = typer.Option(
        None, "--min-severity", help="Only report findings at least this severe."
    ),
    ignore: Optional[List[str]] = typer.Option(None, "--ignore", help="Extra ignore glob."),
    workers: Optional[int] = typer.Option(None, "--workers", "-j", min=1, help="Worker threads."),
    output_format: OutputFormat = typer.Option(
        OutputFormat.table, "--format", "-f", case_sensitive=False, help="Report format."
    ),
    json_output: bool = typer.Option(False, "--json", help="Shorthand for --format json."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show remediation hints and info logs."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors."),
) -> None:
    """Scan a file or directory for insecure cookie, CORS, env and token handling."""
    _configure_logging(verbose, quiet)

    overrides = CliOverrides(
        enable=tuple(enable or ()),
        disable=tuple(disable or ()),
        fail_threshold=_parse_severity(fail_threshold, "--fail-threshold"),
        ignore_patterns=tuple(ignore or ()),
    )
    report_threshold = _parse_severity(min_severity, "--min-severity")

    registry = RuleRegistry.with_builtins()
    try:
        config = _load_config(target, config_path, overrides, registry)
        files = find_source_files(target, extensions=config.extensions)
        root = target.resolve() if target.is_dir() else target.resolve().parent
        result = scan_files(files, config, registry, workers=workers, root=root)
    except ConfigValidationError as e:
        logger.debug("%s", e.to_detailed_string())
        _fail(str(e))
    except ScanRootError as e:
        _fail(e.message)

    shown = filter_by_threshold(result.findings, report_threshold) if report_threshold else result.findings

    if json_output:
        output_format = OutputFormat.json

    if output_format is OutputFormat.json:
        payload = {
            "findings": [f.model_dump(mode="json") for f in shown],
            "summary": result.summary.model_dump(mode="json"),
            "files_scanned": result.files_scanned,
        }
        typer.echo(json.dumps(payload, indent=2))
    elif output_format is OutputFormat.markdown:
        typer.echo(format_markdown(shown, result.summary, result.files_scanned, root=root), nl=False)
    elif output_format is OutputFormat.compact:
        print_compact(shown, summary=result.summary, files_scanned=result.files_scanned, root=root)
    else:
        print_findings(
            shown,
            summary=result.summary,
            analyzed_files=files if verbose else None,
            registry=registry,
            verbose=verbose,
            root=root,
        )

    if exceeds_threshold(result.findings, config.fail_threshold):
        raise typer.Exit(code=EXIT_FINDINGS)
    raise typer.Exit(code=EXIT_OK)


@app.command("rules")
def list_rules(
    json_output: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """List the built-in rules."""
    registry = RuleRegistry.with_builtins()
    if json_output:
        typer.echo(json.dumps([r.model_dump(mode="json", by_alias=True) for r in registry.all()], indent=2))
        return

    table = Table(title="webaudit rules", header_style="bold cyan")
    table.add_column("Id")
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Default", justify="center")
    table.add_column("Description")
    for rule in registry.all():
        table.add_row(
            rule.id,
            rule.category,
            rule.severity.value,
            "on" if rule.enabled_by_default else "off",
            rule.description,
        )
    Console().print(table)


@app.command()
def schema() -> None:
    """Print the JSON Schema of the configuration file."""
    typer.echo(json.dumps(config_json_schema(), indent=2))


def main() -> None:
    """Entry point for `python -m webaudit.main` and the `webaudit` script."""
    app()


if __name__ == "__main__":
    main()
