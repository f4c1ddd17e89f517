# Pydantic data models for scan output: Location, Finding, ErrorSummary, ScanResult.
# RawMatch is the matcher's unaggregated output.

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from webaudit.extractor import Position
from webaudit.severity import Severity


@dataclass(frozen=True)
class RawMatch:
    """One rule matching one code unit, before filtering and severity overrides."""

    rule_id: str
    path: Path
    start: Position
    end: Position
    snippet: str
    captures: Mapping[str, Any] = field(default_factory=dict)


class Location(BaseModel):
    """Where in the source a finding was reported (file, line, column)."""

    model_config = ConfigDict(frozen=True)

    path: Path
    line: int = Field(..., ge=1, description="1-based line number")
    column: int = Field(..., ge=1, description="1-based column number")
    end_line: Optional[int] = Field(None, ge=1)
    end_column: Optional[int] = Field(None, ge=1)
    snippet: Optional[str] = None


class Finding(BaseModel):
    """A single issue reported by a rule (e.g. wildcard CORS origin at line 12)."""

    model_config = ConfigDict(frozen=True)

    rule_id: str
    category: str
    message: str
    severity: Severity
    location: Location

    @property
    def identity(self) -> tuple:
        loc = self.location
        return (self.rule_id, loc.path.as_posix(), loc.line, loc.column, loc.end_line, loc.end_column)

    @property
    def sort_key(self) -> tuple:
        loc = self.location
        return (loc.path.as_posix(), loc.line, loc.column, self.rule_id)


class SkippedFile(BaseModel):
    path: Path
    reason: str


class RuleErrorRecord(BaseModel):
    rule_id: str
    path: Path
    line: int
    reason: str


class ErrorSummary(BaseModel):
    """Recoverable problems met during a scan: unreadable files and failing rules."""

    skipped_files: list[SkippedFile] = Field(default_factory=list)
    rule_errors: list[RuleErrorRecord] = Field(default_factory=list)

    @computed_field
    @property
    def skipped_file_count(self) -> int:
        return len(self.skipped_files)

    @computed_field
    @property
    def rule_error_count(self) -> int:
        return len(self.rule_errors)

    @computed_field
    @property
    def warning_count(self) -> int:
        return self.skipped_file_count + self.rule_error_count


class ScanResult(BaseModel):
    findings: list[Finding] = Field(default_factory=list)
    summary: ErrorSummary = Field(default_factory=ErrorSummary)
    files_scanned: int = 0
