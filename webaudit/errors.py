# Error taxonomy: fatal configuration/registration errors and recoverable
# per-file / per-rule errors that end up in the ErrorSummary.

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Sequence


class WebAuditError(Exception):
    """Base class for all scanner errors. Carries a code and optional context."""

    code = "WEBAUDIT_ERROR"

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_detailed_string(self) -> str:
        """Render the error with its context, one key per line."""
        lines = [f"{type(self).__name__} [{self.code}]: {self.message}"]
        if self.context:
            lines.append("")
            lines.append("Context:")
            for key, value in self.context.items():
                lines.append(f"  {key}: {json.dumps(value, default=str)}")
        if self.__cause__ is not None:
            lines.append("")
            lines.append(f"Caused by: {self.__cause__}")
        return "\n".join(lines)


class ConfigValidationError(WebAuditError):
    """
    Configuration could not be resolved: malformed JSON, schema violation,
    unknown rule id or custom rule id collision. Fatal to the scan.

    issues is a list of (path, reason) pairs, e.g. ("rules.foo", "unknown rule id").
    """

    code = "CONFIG_ERROR"

    def __init__(
        self,
        message: str,
        issues: Sequence[tuple[str, str]] = (),
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context)
        self.issues = list(issues)

    @property
    def paths(self) -> list[str]:
        return [path for path, _ in self.issues]

    def __str__(self) -> str:
        if not self.issues:
            return self.message
        details = "; ".join(f"{path}: {reason}" for path, reason in self.issues)
        return f"{self.message} ({details})"


class RuleConflictError(WebAuditError):
    """A rule id was registered twice."""

    code = "RULE_CONFLICT"

    def __init__(self, rule_id: str) -> None:
        super().__init__(f"Rule id {rule_id!r} is already registered", {"rule_id": rule_id})
        self.rule_id = rule_id


class FileReadError(WebAuditError):
    """A target file could not be read or decoded; the file is skipped."""

    code = "FILE_ERROR"

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(f"Cannot read {path}: {reason}", {"path": str(path)})
        self.path = path
        self.reason = reason


class RuleExecutionError(WebAuditError):
    """A matcher raised while evaluating one rule against one code unit."""

    code = "RULE_ERROR"

    def __init__(self, rule_id: str, path: Path, line: int, reason: str) -> None:
        super().__init__(
            f"Rule {rule_id} failed on {path}:{line}: {reason}",
            {"rule_id": rule_id, "path": str(path), "line": line},
        )
        self.rule_id = rule_id
        self.path = path
        self.line = line
        self.reason = reason


class ScanRootError(WebAuditError):
    """The scan target does not exist or cannot be traversed. Fatal."""

    code = "SCAN_ROOT_ERROR"


class ScanCancelledError(WebAuditError):
    """The scan was cancelled; partial results are discarded."""

    code = "SCAN_CANCELLED"
