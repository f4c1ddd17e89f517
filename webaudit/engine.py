"""
Scan orchestration: run the extractor and matcher over a file list.

Each file is one task on a ThreadPoolExecutor. A task builds its own
tree-sitter parser (parsers are not shared between threads), extracts code
units and evaluates the effective rule set, returning raw matches and rule
errors. Results are merged as they complete and then handed to aggregate(),
which sorts them, so the final order does not depend on scheduling.

Cancellation: setting cancel_event stops dispatching new files, cancels the
ones not yet started, and raises ScanCancelledError once in-flight tasks
have returned. Partial results are discarded.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import NamedTuple, Optional, Sequence

from webaudit.aggregator import aggregate
from webaudit.config import EffectiveConfig
from webaudit.context import create_context
from webaudit.errors import FileReadError, RuleExecutionError, ScanCancelledError
from webaudit.extractor import extract_units
from webaudit.findings.models import RawMatch, ScanResult
from webaudit.matcher import evaluate
from webaudit.rules.base import RuleDefinition
from webaudit.rules.registry import RuleRegistry

logger = logging.getLogger(__name__)


class FileScan(NamedTuple):
    path: Path
    matches: list[RawMatch]
    errors: list[RuleExecutionError]


def rules_for_file(rules: Sequence[RuleDefinition], path: Path, source: str) -> list[RuleDefinition]:
    """Rules whose applies_to accepts this file (extension and content filter)."""
    return [rule for rule in rules if rule.applies_to.accepts(path, source)]


def scan_file(path: Path, rules: Sequence[RuleDefinition]) -> FileScan:
    """
    Scan one file synchronously.

    Raises FileReadError if the file cannot be read, decoded or analyzed
    (e.g. nesting too deep for the extractor).
    """
    context = create_context(path)
    applicable = rules_for_file(rules, path, context.source.decode("utf-8"))
    matches: list[RawMatch] = []
    errors: list[RuleExecutionError] = []
    if applicable:
        try:
            for unit in extract_units(context):
                matches.extend(evaluate(unit, applicable, errors))
        except RecursionError as e:
            raise FileReadError(path, "syntax tree nested too deeply to analyze") from e
    logger.debug("%s: %d raw match(es), %d rule error(s)", path, len(matches), len(errors))
    return FileScan(path, matches, errors)


def _cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def scan_files(
    paths: Sequence[Path],
    config: EffectiveConfig,
    registry: RuleRegistry,
    workers: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
    root: Optional[Path] = None,
) -> ScanResult:
    """
    Scan files concurrently and aggregate the results.

    config must already be resolved against registry (custom rules registered).
    Duplicate paths, ignored paths and unsupported extensions are filtered
    before dispatch.
    """
    rules = registry.effective_set(config)
    targets = [
        p for p in dict.fromkeys(paths) if config.accepts_extension(p) and not config.is_ignored(p, root)
    ]
    logger.info(
        "Scanning %d file(s) with %d rule(s)%s",
        len(targets),
        len(rules),
        f" on {workers} worker(s)" if workers else "",
    )

    matches: list[RawMatch] = []
    errors: list[RuleExecutionError] = []
    skipped: list[FileReadError] = []

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="webaudit") as pool:
        futures: dict[Future[FileScan], Path] = {}
        for path in targets:
            if _cancelled(cancel_event):
                break
            futures[pool.submit(scan_file, path, rules)] = path

        for future in as_completed(futures):
            if _cancelled(cancel_event):
                for pending in futures:
                    pending.cancel()
                break
            path = futures[future]
            try:
                outcome = future.result()
            except FileReadError as e:
                logger.warning("Skipping %s: %s", path, e.reason)
                skipped.append(e)
                continue
            except Exception as e:
                logger.warning("Skipping %s: unexpected %s: %s", path, type(e).__name__, e)
                logger.debug("Traceback for %s", path, exc_info=e)
                skipped.append(FileReadError(path, f"{type(e).__name__}: {e}"))
                continue
            matches.extend(outcome.matches)
            errors.extend(outcome.errors)

    if _cancelled(cancel_event):
        raise ScanCancelledError("Scan cancelled", {"files_queued": len(targets)})

    findings, summary = aggregate(matches, config, registry, errors, skipped, root)
    return ScanResult(findings=findings, summary=summary, files_scanned=len(targets) - len(skipped))
