"""End-to-end tests for the scan engine over real files."""

import threading
from pathlib import Path

import pytest

import webaudit.engine as engine_module
import webaudit.matcher as matcher_module
from webaudit.config import CliOverrides, default_config, resolve
from webaudit.engine import scan_file, scan_files
from webaudit.errors import FileReadError, ScanCancelledError
from webaudit.rules.registry import RuleRegistry
from webaudit.severity import Severity
from webaudit.traversal import find_source_files

FIXTURES = Path(__file__).parent / "fixtures"

INSECURE_APP = b"""\
const cors = require('cors');
app.use(cors({ origin: '*', credentials: true }));
res.cookie('sid', id);
localStorage.setItem('token', jwt);
"""


@pytest.fixture
def registry():
    return RuleRegistry.with_builtins()


def _scan(paths, registry, raw=None, cli=None, **kwargs):
    config = resolve(default_config(registry), raw, cli, registry)
    return scan_files(paths, config, registry, **kwargs)


def _write(tmp_path: Path, name: str, content: bytes) -> Path:
    path = tmp_path / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


def test_fixture_tree_is_deterministic(registry):
    files = find_source_files(FIXTURES)
    serial = _scan(files, registry, workers=1)
    parallel = _scan(files, registry, workers=4)
    assert serial.findings
    assert serial.findings == parallel.findings
    assert serial.files_scanned == len(files)
    assert [f.sort_key for f in serial.findings] == sorted(f.sort_key for f in serial.findings)


def test_secure_fixtures_are_clean(registry):
    secure = [
        FIXTURES / "cookie_security" / "secure_cookies.js",
        FIXTURES / "cors_config" / "secure_cors.js",
        FIXTURES / "env_exposure" / "safe_config.js",
        FIXTURES / "jwt_storage" / "cookie_jwt.js",
        FIXTURES / "jwt_storage" / "memory_jwt.js",
    ]
    result = _scan(secure, registry)
    assert result.findings == []
    assert result.summary.warning_count == 0


def test_one_finding_per_category(tmp_path, registry):
    path = _write(tmp_path, "server.js", INSECURE_APP)
    result = _scan([path], registry)
    ids = {f.rule_id for f in result.findings}
    assert "cors-wildcard-credentials" in ids
    assert "cors-wildcard-origin" not in ids
    assert {"cookie-missing-samesite", "cookie-missing-httponly", "cookie-missing-secure"} <= ids
    assert "jwt-web-storage" in ids
    critical = [f for f in result.findings if f.severity is Severity.CRITICAL]
    assert [(f.rule_id, f.location.line) for f in critical] == [("cors-wildcard-credentials", 2)]


def test_invalid_utf8_is_skipped(tmp_path, registry):
    good = _write(tmp_path, "good.js", b"res.cookie('sid', id);\n")
    bad = _write(tmp_path, "bad.js", b"const s = '\xff\xfe';\n")
    result = _scan([good, bad], registry)
    assert result.files_scanned == 1
    assert [s.path for s in result.summary.skipped_files] == [bad]
    assert "UTF-8" in result.summary.skipped_files[0].reason
    assert result.findings


def test_unsupported_extension_not_scanned(tmp_path, registry):
    path = _write(tmp_path, "notes.txt", b"res.cookie('sid', id);")
    result = _scan([path], registry)
    assert result.files_scanned == 0
    assert result.findings == []


def test_cancel_before_start(tmp_path, registry):
    path = _write(tmp_path, "server.js", INSECURE_APP)
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(ScanCancelledError):
        _scan([path], registry, cancel_event=cancel)


def test_failing_matcher_is_isolated(tmp_path, registry, monkeypatch):
    def boom(matcher, unit):
        raise RuntimeError("matcher exploded")

    monkeypatch.setitem(matcher_module._MATCHERS, "property-combination", boom)
    path = _write(tmp_path, "server.js", INSECURE_APP)
    result = _scan([path], registry)

    assert result.summary.rule_error_count > 0
    assert all(e.reason == "matcher exploded" for e in result.summary.rule_errors)
    assert {e.rule_id.split("-")[0] for e in result.summary.rule_errors} == {"cors"}
    ids = {f.rule_id for f in result.findings}
    assert "cookie-missing-samesite" in ids
    assert not any(i.startswith("cors-") for i in ids)


def test_ignore_patterns_skip_files(tmp_path, registry):
    kept = _write(tmp_path, "src/server.js", INSECURE_APP)
    ignored = _write(tmp_path, "legacy/server.js", INSECURE_APP)
    result = _scan([kept, ignored], registry, cli=CliOverrides(ignore_patterns=("legacy/*",)), root=tmp_path)
    assert result.files_scanned == 1
    assert {f.location.path for f in result.findings} == {kept}


def test_disable_and_override(tmp_path, registry):
    path = _write(tmp_path, "server.js", INSECURE_APP)
    raw = {"rules": {"jwt-web-storage": "off", "cookie-missing-secure": "critical"}}
    result = _scan([path], registry, raw=raw)
    by_id = {f.rule_id: f for f in result.findings}
    assert "jwt-web-storage" not in by_id
    assert by_id["cookie-missing-secure"].severity is Severity.CRITICAL


def test_custom_rule_from_config(tmp_path, registry):
    path = _write(tmp_path, "routes.ts", b"router.get('/debug/vars', handler);\n")
    raw = {
        "customRules": [
            {
                "id": "no-debug-endpoint",
                "category": "custom-checks",
                "severity": "critical",
                "matcher": {"kind": "literal", "values": ["/debug/vars"]},
                "message": "Debug endpoint exposed: {match}",
            }
        ]
    }
    result = _scan([path], registry, raw=raw)
    [finding] = result.findings
    assert finding.rule_id == "no-debug-endpoint"
    assert finding.message == "Debug endpoint exposed: /debug/vars"
    assert (finding.location.line, finding.location.column) == (1, 12)


def test_applies_to_content_filter(tmp_path, registry):
    raw = {
        "customRules": [
            {
                "id": "express-only",
                "category": "custom-checks",
                "severity": "info",
                "appliesTo": {"contains": "express"},
                "matcher": {"kind": "regex", "pattern": r"app\.listen"},
            }
        ]
    }
    with_express = _write(tmp_path, "a.js", b"const express = require('express');\napp.listen(3000);\n")
    without = _write(tmp_path, "b.js", b"app.listen(3000);\n")
    result = _scan([with_express, without], registry, raw=raw)
    assert [(f.location.path, f.location.line) for f in result.findings] == [(with_express, 2)]


def test_scan_file_directly(registry):
    path = FIXTURES / "jwt_storage" / "localstorage_jwt.js"
    outcome = scan_file(path, registry.effective_set(default_config(registry)))
    assert outcome.path == path
    assert outcome.errors == []
    assert {m.rule_id for m in outcome.matches} == {"jwt-web-storage"}


def test_deeply_nested_file_does_not_abort_scan(tmp_path, registry):
    server = _write(tmp_path, "a_server.js", b"app.use(cors({ origin: '*', credentials: true }));\n")
    depth = 1500
    data = _write(tmp_path, "b_data.js", b"const d = " + b"{a:" * depth + b"1" + b"}" * depth + b";\n")
    result = _scan([server, data], registry)
    assert result.files_scanned + result.summary.skipped_file_count == 2
    critical = [f for f in result.findings if f.severity is Severity.CRITICAL]
    assert [(f.rule_id, f.location.path) for f in critical] == [("cors-wildcard-credentials", server)]


def test_unexpected_error_skips_only_that_file(tmp_path, registry, monkeypatch):
    good = _write(tmp_path, "good.js", b"res.cookie('sid', id);\n")
    bad = _write(tmp_path, "bad.js", b"res.cookie('sid', id);\n")
    real_extract = engine_module.extract_units

    def flaky(context):
        if context.path == bad:
            raise RuntimeError("extractor exploded")
        return real_extract(context)

    monkeypatch.setattr(engine_module, "extract_units", flaky)
    result = _scan([good, bad], registry)
    assert result.files_scanned == 1
    [skipped] = result.summary.skipped_files
    assert skipped.path == bad
    assert skipped.reason == "RuntimeError: extractor exploded"
    assert {f.location.path for f in result.findings} == {good}


def test_recursion_error_is_reported_as_unreadable(tmp_path, registry, monkeypatch):
    path = _write(tmp_path, "deep.js", b"res.cookie('sid', id);\n")

    def too_deep(context):
        raise RecursionError("maximum recursion depth exceeded")

    monkeypatch.setattr(engine_module, "extract_units", too_deep)
    with pytest.raises(FileReadError, match="nested too deeply"):
        scan_file(path, registry.effective_set(default_config(registry)))


def test_duplicate_paths_scanned_once(tmp_path, registry):
    path = _write(tmp_path, "server.js", INSECURE_APP)
    once = _scan([path], registry)
    twice = _scan([path, path], registry)
    assert twice.findings == once.findings
    assert twice.files_scanned == once.files_scanned == 1
