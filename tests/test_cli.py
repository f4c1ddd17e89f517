"""Tests for the typer command line: exit codes, config discovery, JSON output."""

import json
from pathlib import Path

from typer.testing import CliRunner

from webaudit.main import EXIT_CONFIG_ERROR, EXIT_FINDINGS, EXIT_OK, app

runner = CliRunner()
FIXTURES = Path(__file__).parent / "fixtures"

LAX_COOKIE = "res.cookie('sid', id, { httpOnly: true, secure: true, sameSite: 'lax' });\n"
CORS_WILDCARD = "app.use(cors({ origin: '*', credentials: true }));\n"


def _project(tmp_path: Path, source: str, config: dict | None = None) -> Path:
    (tmp_path / "server.js").write_text(source)
    if config is not None:
        (tmp_path / ".webauditrc.json").write_text(json.dumps(config))
    return tmp_path


def test_insecure_directory_exits_one():
    result = runner.invoke(app, ["scan", str(FIXTURES / "cors_config")])
    assert result.exit_code == EXIT_FINDINGS
    assert "insecure_cors.js" in result.output


def test_secure_file_exits_zero():
    result = runner.invoke(app, ["scan", str(FIXTURES / "cors_config" / "secure_cors.js")])
    assert result.exit_code == EXIT_OK
    assert "No issues found" in result.output


def test_missing_target_exits_two(tmp_path):
    result = runner.invoke(app, ["scan", str(tmp_path / "nope")])
    assert result.exit_code == EXIT_CONFIG_ERROR
    assert "does not exist" in result.output


def test_invalid_config_exits_two(tmp_path):
    project = _project(tmp_path, LAX_COOKIE, {"rulez": {}})
    result = runner.invoke(app, ["scan", str(project)])
    assert result.exit_code == EXIT_CONFIG_ERROR
    assert "rulez" in result.output


def test_explicit_config_path(tmp_path):
    project = _project(tmp_path, LAX_COOKIE)
    config = tmp_path / "audit.json"
    config.write_text(json.dumps({"rules": {"cookie-samesite-lax": "off"}}))
    result = runner.invoke(app, ["scan", str(project), "--config", str(config)])
    assert result.exit_code == EXIT_OK


def test_discovered_config_applies(tmp_path):
    project = _project(tmp_path, LAX_COOKIE, {"failThreshold": "vulnerable"})
    assert runner.invoke(app, ["scan", str(project)]).exit_code == EXIT_OK


def test_fail_threshold_flag():
    target = str(FIXTURES / "cookie_security" / "missing_flags.js")
    assert runner.invoke(app, ["scan", target]).exit_code == EXIT_FINDINGS
    assert runner.invoke(app, ["scan", target, "--fail-threshold", "critical"]).exit_code == EXIT_OK


def test_disable_flag(tmp_path):
    project = _project(tmp_path, LAX_COOKIE)
    assert runner.invoke(app, ["scan", str(project)]).exit_code == EXIT_FINDINGS
    result = runner.invoke(app, ["scan", str(project), "--disable", "cookie-samesite-lax"])
    assert result.exit_code == EXIT_OK


def test_unknown_rule_flag_exits_two(tmp_path):
    project = _project(tmp_path, LAX_COOKIE)
    result = runner.invoke(app, ["scan", str(project), "--enable", "cookie-everything"])
    assert result.exit_code == EXIT_CONFIG_ERROR


def test_bad_severity_flag(tmp_path):
    project = _project(tmp_path, LAX_COOKIE)
    result = runner.invoke(app, ["scan", str(project), "--fail-threshold", "loud"])
    assert result.exit_code == 2


def test_json_output(tmp_path):
    project = _project(tmp_path, "app.use(cors({ origin: '*', credentials: true }));\n")
    result = runner.invoke(app, ["scan", str(project), "--json", "--quiet"])
    assert result.exit_code == EXIT_FINDINGS
    payload = json.loads(result.stdout)
    assert payload["files_scanned"] == 1
    assert [f["rule_id"] for f in payload["findings"]] == ["cors-wildcard-credentials"]
    finding = payload["findings"][0]
    assert finding["severity"] == "critical"
    assert finding["location"]["line"] == 1
    assert payload["summary"]["warning_count"] == 0


def test_min_severity_hides_but_still_fails(tmp_path):
    project = _project(tmp_path, LAX_COOKIE)
    result = runner.invoke(app, ["scan", str(project), "--json", "--quiet", "--min-severity", "critical"])
    assert result.exit_code == EXIT_FINDINGS
    assert json.loads(result.stdout)["findings"] == []


def test_format_json_matches_json_flag(tmp_path):
    project = _project(tmp_path, CORS_WILDCARD)
    by_flag = runner.invoke(app, ["scan", str(project), "--json", "--quiet"])
    by_format = runner.invoke(app, ["scan", str(project), "--format", "json", "--quiet"])
    assert by_format.exit_code == EXIT_FINDINGS
    assert json.loads(by_format.stdout) == json.loads(by_flag.stdout)


def test_markdown_output(tmp_path):
    project = _project(tmp_path, CORS_WILDCARD)
    result = runner.invoke(app, ["scan", str(project), "--format", "markdown", "--quiet"])
    assert result.exit_code == EXIT_FINDINGS
    assert result.stdout.startswith("# webaudit Security Scan Report\n")
    assert "- **Files Scanned:** 1" in result.stdout
    assert "### Critical" in result.stdout
    assert "| `cors-wildcard-credentials` | server.js | 1 |" in result.stdout


def test_compact_output(tmp_path):
    project = _project(tmp_path, CORS_WILDCARD)
    result = runner.invoke(app, ["scan", str(project), "-f", "compact", "--quiet"])
    assert result.exit_code == EXIT_FINDINGS
    assert "server.js" in result.stdout
    assert "CRITICAL L1 cors-wildcard-credentials" in result.stdout
    assert "1 critical" in result.stdout
    assert "| 1 files" in result.stdout


def test_compact_output_clean(tmp_path):
    project = _project(tmp_path, "const x = 1;\n")
    result = runner.invoke(app, ["scan", str(project), "-f", "compact", "--quiet"])
    assert result.exit_code == EXIT_OK
    assert "No issues found (1 files)" in result.stdout


def test_unknown_format_rejected(tmp_path):
    project = _project(tmp_path, CORS_WILDCARD)
    result = runner.invoke(app, ["scan", str(project), "--format", "sarif"])
    assert result.exit_code == 2


def test_rules_command_json():
    result = runner.invoke(app, ["rules", "--json"])
    assert result.exit_code == 0
    rules = json.loads(result.stdout)
    assert len(rules) == 21
    assert {"id", "category", "severity", "matcher", "appliesTo"} <= set(rules[0])


def test_rules_command_table():
    result = runner.invoke(app, ["rules"])
    assert result.exit_code == 0
    assert "webaudit rules" in result.output


def test_schema_command():
    result = runner.invoke(app, ["schema"])
    assert result.exit_code == 0
    schema = json.loads(result.stdout)
    assert "customRules" in schema["properties"]
