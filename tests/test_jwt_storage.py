"""Unit tests for the jwt-storage rules."""

from pathlib import Path

from webaudit.aggregator import aggregate
from webaudit.config import default_config
from webaudit.context import FileContext, create_context
from webaudit.extractor import extract_units
from webaudit.matcher import evaluate
from webaudit.parser import create_parser, parse_bytes
from webaudit.rules.jwt_storage import RULES
from webaudit.rules.registry import RuleRegistry

FIXTURES = Path(__file__).parent / "fixtures" / "jwt_storage"


def _findings(context: FileContext) -> list:
    registry = RuleRegistry(RULES)
    raws = []
    for unit in extract_units(context):
        raws.extend(evaluate(unit, RULES))
    findings, _ = aggregate(raws, default_config(registry), registry)
    return findings


def _run_rules(source: bytes, path: Path | None = None) -> list:
    """Parse source, run the JWT storage rules, return aggregated findings."""
    if path is None:
        path = Path("test.js")
    tree = parse_bytes(source, parser=create_parser(path))
    return _findings(FileContext(path=path, source=source, tree=tree))


def test_localstorage_fixture():
    findings = _findings(create_context(FIXTURES / "localstorage_jwt.js"))
    assert [(f.rule_id, f.location.line, f.location.column) for f in findings] == [
        ("jwt-web-storage", 4, 3),
        ("jwt-web-storage", 5, 3),
    ]
    assert all(f.location.snippet.startswith("localStorage.setItem(") for f in findings)


def test_cookie_and_memory_fixtures():
    """httpOnly cookie and in-memory storage are the recommended patterns."""
    assert _findings(create_context(FIXTURES / "cookie_jwt.js")) == []
    assert _findings(create_context(FIXTURES / "memory_jwt.js")) == []


def test_unrelated_session_storage_ok():
    assert _run_rules(b"sessionStorage.setItem('theme', 'dark');") == []


def test_window_prefixed_storage():
    findings = _run_rules(b"window.localStorage.setItem('access_token', data.token);", Path("auth.ts"))
    assert [f.rule_id for f in findings] == ["jwt-web-storage"]


def test_property_assignment_position():
    source = b"function save(t) {\n  localStorage.token = t;\n}\n"
    findings = _run_rules(source)
    assert [f.rule_id for f in findings] == ["jwt-web-storage-assignment"]
    assert (findings[0].location.line, findings[0].location.column) == (2, 3)


def test_bracket_assignment():
    findings = _run_rules(b"sessionStorage['jwt'] = t;")
    assert [f.rule_id for f in findings] == ["jwt-web-storage-assignment"]


def test_comparison_is_not_assignment():
    assert _run_rules(b"const same = localStorage.token === t;") == []
