"""Tests for finding aggregation: filtering, overrides, dedup and ordering."""

import logging
import random
from pathlib import Path

import pytest

from webaudit.aggregator import aggregate, build_summary, exceeds_threshold, filter_by_threshold
from webaudit.config import CliOverrides, EffectiveConfig, default_config, resolve
from webaudit.errors import FileReadError, RuleExecutionError
from webaudit.extractor import Position
from webaudit.findings.models import RawMatch
from webaudit.rules.registry import RuleRegistry
from webaudit.severity import Severity



@pytest.fixture
def registry():
    return RuleRegistry.with_builtins()


def _raw(rule_id: str, path: str, line: int, col: int = 1, **captures) -> RawMatch:
    return RawMatch(
        rule_id=rule_id,
        path=Path(path),
        start=Position(line, col),
        end=Position(line, col + 10),
        snippet=f"line {line}",
        captures=captures,
    )


def test_disabled_rule_dropped(registry):
    config = resolve(default_config(registry), None, CliOverrides(disable=("cors-null-origin",)), registry)
    raws = [_raw("cors-null-origin", "/app/a.js", 3), _raw("cors-wildcard-origin", "/app/a.js", 4)]
    findings, _ = aggregate(raws, config, registry)
    assert [f.rule_id for f in findings] == ["cors-wildcard-origin"]


def test_severity_override_applied(registry):
    config = resolve(default_config(registry), {"rules": {"cookie-samesite-lax": "info"}}, None, registry)
    findings, _ = aggregate([_raw("cookie-samesite-lax", "/app/a.js", 1)], config, registry)
    assert findings[0].severity is Severity.INFO
    assert registry.get("cookie-samesite-lax").severity is Severity.WARNING


def test_ignored_paths_dropped(registry):
    config = resolve(default_config(registry), {"ignorePatterns": ["legacy/*"]}, None, registry)
    raws = [_raw("cors-null-origin", "/app/legacy/old.js", 1), _raw("cors-null-origin", "/app/src/new.js", 1)]
    findings, _ = aggregate(raws, config, registry, root=Path("/app"))
    assert [f.location.path for f in findings] == [Path("/app/src/new.js")]


def test_duplicates_collapsed(registry):
    config = default_config(registry)
    raws = [_raw("cors-null-origin", "/app/a.js", 2, 5)] * 3
    findings, _ = aggregate(raws, config, registry)
    assert len(findings) == 1


def test_same_range_different_rules_kept(registry):
    config = default_config(registry)
    raws = [_raw("cookie-missing-samesite", "/app/a.js", 2), _raw("cookie-missing-secure", "/app/a.js", 2)]
    findings, _ = aggregate(raws, config, registry)
    assert [f.rule_id for f in findings] == ["cookie-missing-samesite", "cookie-missing-secure"]


def test_order_independent_of_input(registry):
    config = default_config(registry)
    raws = [
        _raw("cors-null-origin", "/app/b.js", 1),
        _raw("cors-wildcard-origin", "/app/a.js", 10, 3),
        _raw("cors-null-origin", "/app/a.js", 10, 3),
        _raw("jwt-web-storage", "/app/a.js", 2),
        _raw("cookie-missing-secure", "/app/a.js", 10, 1),
    ]
    expected, _ = aggregate(raws, config, registry)
    shuffled = list(raws)
    random.Random(7).shuffle(shuffled)
    again, _ = aggregate(shuffled, config, registry)
    assert again == expected
    assert [(f.location.path.name, f.location.line, f.location.column, f.rule_id) for f in expected] == [
        ("a.js", 2, 1, "jwt-web-storage"),
        ("a.js", 10, 1, "cookie-missing-secure"),
        ("a.js", 10, 3, "cors-null-origin"),
        ("a.js", 10, 3, "cors-wildcard-origin"),
        ("b.js", 1, 1, "cors-null-origin"),
    ]


def test_unknown_rule_dropped_with_warning(registry, caplog):
    config = EffectiveConfig(enabled_rules={"ghost-rule": True})
    with caplog.at_level(logging.WARNING):
        findings, _ = aggregate([_raw("ghost-rule", "/app/a.js", 1)], config, registry)
    assert findings == []
    assert "ghost-rule" in caplog.text


def test_message_rendered_from_captures(registry):
    config = default_config(registry)
    raw = _raw("cors-wildcard-origin", "/app/a.js", 1, key="origin", value="'*'")
    findings, _ = aggregate([raw], config, registry)
    assert "origin" in findings[0].message
    assert "{" not in findings[0].message


def test_summary_counts(registry):
    errors = [
        RuleExecutionError("cors-null-origin", Path("/app/b.js"), 4, "boom"),
        RuleExecutionError("cors-null-origin", Path("/app/a.js"), 9, "boom"),
    ]
    skipped = [FileReadError(Path("/app/bin.js"), "not valid UTF-8")]
    _, summary = aggregate([], default_config(registry), registry, errors, skipped)
    assert summary.skipped_file_count == 1
    assert summary.rule_error_count == 2
    assert summary.warning_count == 3
    assert [e.path.name for e in summary.rule_errors] == ["a.js", "b.js"]
    assert summary.model_dump(mode="json")["warning_count"] == 3


def test_empty_summary():
    summary = build_summary()
    assert summary.warning_count == 0
    assert summary.skipped_files == []


def test_threshold_helpers(registry):
    config = default_config(registry)
    raws = [_raw("cookie-samesite-lax", "/app/a.js", 1), _raw("cors-wildcard-credentials", "/app/a.js", 2)]
    findings, _ = aggregate(raws, config, registry)
    assert [f.rule_id for f in filter_by_threshold(findings, Severity.CRITICAL)] == ["cors-wildcard-credentials"]
    assert len(filter_by_threshold(findings, Severity.INFO)) == 2
    assert exceeds_threshold(findings, Severity.WARNING)
    assert exceeds_threshold(findings, Severity.CRITICAL)
    assert not exceeds_threshold(findings[:1], Severity.VULNERABLE)
    assert not exceeds_threshold([], Severity.INFO)
