# Finding aggregation: raw matches -> filtered, overridden, deduplicated,
# deterministically ordered Findings plus an ErrorSummary.

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional, Sequence

from webaudit.config import EffectiveConfig
from webaudit.errors import FileReadError, RuleExecutionError
from webaudit.findings.models import ErrorSummary, Finding, Location, RawMatch, RuleErrorRecord, SkippedFile
from webaudit.matcher import render_message
from webaudit.rules.registry import RuleRegistry
from webaudit.severity import Severity

logger = logging.getLogger(__name__)


def _to_finding(raw: RawMatch, rule, severity: Severity) -> Finding:
    return Finding(
        rule_id=rule.id,
        category=rule.category,
        message=render_message(rule.message, dict(raw.captures)),
        severity=severity,
        location=Location(
            path=raw.path,
            line=raw.start.line,
            column=raw.start.column,
            end_line=raw.end.line,
            end_column=raw.end.column,
            snippet=raw.snippet or None,
        ),
    )


def build_summary(
    errors: Iterable[RuleExecutionError] = (),
    skipped: Iterable[FileReadError] = (),
) -> ErrorSummary:
    skipped_files = sorted(
        (SkippedFile(path=e.path, reason=e.reason) for e in skipped),
        key=lambda s: s.path.as_posix(),
    )
    rule_errors = sorted(
        (RuleErrorRecord(rule_id=e.rule_id, path=e.path, line=e.line, reason=e.reason) for e in errors),
        key=lambda r: (r.path.as_posix(), r.line, r.rule_id),
    )
    return ErrorSummary(skipped_files=skipped_files, rule_errors=rule_errors)


def aggregate(
    raw_matches: Iterable[RawMatch],
    config: EffectiveConfig,
    registry: RuleRegistry,
    errors: Iterable[RuleExecutionError] = (),
    skipped: Iterable[FileReadError] = (),
    root: Optional[Path] = None,
) -> tuple[list[Finding], ErrorSummary]:
    """
    Turn raw matches into the final finding list.

    - matches of disabled or unknown rules are dropped
    - severity overrides from config are applied
    - matches in ignored paths are dropped
    - duplicates (same rule and range) are collapsed
    - order is path, line, column, rule id, whatever the input order
    """
    unique: dict[tuple, Finding] = {}
    for raw in raw_matches:
        rule = registry.get(raw.rule_id)
        if rule is None:
            logger.warning("Dropping match for unregistered rule %s", raw.rule_id)
            continue
        if not config.is_enabled(rule.id) or config.is_ignored(raw.path, root):
            continue
        finding = _to_finding(raw, rule, config.severity_for(rule))
        unique.setdefault(finding.identity, finding)

    findings = sorted(unique.values(), key=lambda f: f.sort_key)
    summary = build_summary(errors, skipped)
    logger.info(
        "Aggregated %d finding(s); %d file(s) skipped, %d rule error(s)",
        len(findings),
        summary.skipped_file_count,
        summary.rule_error_count,
    )
    return findings, summary


def filter_by_threshold(findings: Sequence[Finding], threshold: Severity) -> list[Finding]:
    return [f for f in findings if f.severity >= threshold]


def exceeds_threshold(findings: Sequence[Finding], threshold: Severity) -> bool:
    """True if any finding is at or above threshold (the CLI exits 1 then)."""
    return any(f.severity >= threshold for f in findings)
