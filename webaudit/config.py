"""
Scanner configuration: which rules are enabled, at what severity, and which
files are ignored.

Three layers are merged key by key, later layers winning:

    defaults (from the registry)  <  .webauditrc.json  <  CLI flags

The file layer is validated against the ConfigFile pydantic schema before
anything is merged, so a typo in a property name fails the run instead of
being silently ignored. Reading the file from disk is kept out of resolve();
use load_config_file() / discover_config_file() for that.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError, field_validator

from webaudit.errors import ConfigValidationError
from webaudit.rules.base import JS_TS_EXTENSIONS, RuleDefinition
from webaudit.rules.registry import RuleRegistry
from webaudit.severity import Severity

logger = logging.getLogger(__name__)

CONFIG_FILE_NAMES = (".webauditrc.json", ".webauditrc")
DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = ("**/node_modules/**", "**/*.min.js")
DEFAULT_FAIL_THRESHOLD = Severity.WARNING
ROOT_PATH = "<root>"


@lru_cache(maxsize=256)
def _glob_variants(pattern: str) -> tuple[str, ...]:
    """
    Expand each "**/" in pattern into "*/"-style and empty alternatives.

    fnmatch's "*" already crosses "/", so "**/" only needs the extra variant
    that matches zero directories: "src/**/*.js" also yields "src/*.js".
    """
    head, sep, tail = pattern.partition("**/")
    if not sep:
        return (pattern,)
    return tuple(head + prefix + rest for rest in _glob_variants(tail) for prefix in ("**/", ""))


@dataclass(frozen=True)
class EffectiveConfig:
    """Resolved, read-only configuration for one scan."""

    enabled_rules: Mapping[str, bool] = field(default_factory=dict)
    severity_overrides: Mapping[str, Severity] = field(default_factory=dict)
    ignore_patterns: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS
    custom_rules: tuple[RuleDefinition, ...] = ()
    fail_threshold: Severity = DEFAULT_FAIL_THRESHOLD
    extensions: tuple[str, ...] = JS_TS_EXTENSIONS

    def __post_init__(self) -> None:
        object.__setattr__(self, "enabled_rules", MappingProxyType(dict(self.enabled_rules)))
        object.__setattr__(self, "severity_overrides", MappingProxyType(dict(self.severity_overrides)))
        object.__setattr__(self, "ignore_patterns", tuple(self.ignore_patterns))
        object.__setattr__(self, "custom_rules", tuple(self.custom_rules))
        object.__setattr__(self, "extensions", tuple(e.lower() for e in self.extensions))

    def is_enabled(self, rule_id: str) -> bool:
        return self.enabled_rules.get(rule_id, False)

    def severity_for(self, rule: RuleDefinition) -> Severity:
        return self.severity_overrides.get(rule.id, rule.severity)

    def is_ignored(self, path: Path, root: Optional[Path] = None) -> bool:
        """
        True if any ignore glob matches the full or the root-relative POSIX path.

        "*" matches across directories; "**/" also matches no directory at all.
        """
        candidates = [path.as_posix()]
        if root is not None:
            try:
                candidates.append(path.relative_to(root).as_posix())
            except ValueError:
                pass
        return any(
            fnmatchcase(c, variant)
            for pattern in self.ignore_patterns
            for variant in _glob_variants(pattern)
            for c in candidates
        )

    def accepts_extension(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions


def default_config(registry: RuleRegistry) -> EffectiveConfig:
    """Every registered rule at its default enablement, no overrides."""
    return EffectiveConfig(
        enabled_rules={rule.id: rule.enabled_by_default for rule in registry.all()},
    )


# --- file schema -----------------------------------------------------------


class RuleSetting(BaseModel):
    """Object form of a rules entry: {"enabled": false} or {"severity": "critical"}."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    severity: Optional[Severity] = None

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, v):
        return None if v is None else Severity.parse(v)


class CustomRuleSpec(RuleDefinition):
    """A rule declared under customRules; same shape as a built-in definition."""


class ConfigFile(BaseModel):
    """Schema of .webauditrc.json. Unknown properties are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    schema_: Optional[str] = Field(None, alias="$schema")
    rules: dict[str, Union[StrictBool, StrictStr, RuleSetting]] = Field(default_factory=dict)
    ignore_patterns: Optional[list[str]] = Field(None, alias="ignorePatterns")
    custom_rules: list[CustomRuleSpec] = Field(default_factory=list, alias="customRules")
    fail_threshold: Optional[Severity] = Field(None, alias="failThreshold")
    extensions: Optional[list[str]] = None

    @field_validator("fail_threshold", mode="before")
    @classmethod
    def _parse_threshold(cls, v):
        return None if v is None else Severity.parse(v)

    @field_validator("extensions")
    @classmethod
    def _dotted(cls, v):
        if v is None:
            return v
        for ext in v:
            if not ext.startswith(".") or len(ext) < 2:
                raise ValueError(f"extension {ext!r} must look like '.js'")
        return [ext.lower() for ext in v]


@dataclass(frozen=True)
class CliOverrides:
    enable: tuple[str, ...] = ()
    disable: tuple[str, ...] = ()
    fail_threshold: Optional[Severity] = None
    ignore_patterns: tuple[str, ...] = ()


def config_json_schema() -> dict[str, Any]:
    """JSON Schema for .webauditrc.json."""
    return ConfigFile.model_json_schema(by_alias=True)


# --- loading ---------------------------------------------------------------


def discover_config_file(start: Path) -> Optional[Path]:
    """Find a config file in start (or start's directory when it is a file)."""
    directory = start if start.is_dir() else start.parent
    for name in CONFIG_FILE_NAMES:
        candidate = directory / name
        if candidate.is_file():
            logger.debug("Using config file %s", candidate)
            return candidate
    return None


def load_config_file(path: Path) -> str:
    """Read a config file's text. Raises ConfigValidationError if unreadable."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigValidationError(
            f"Cannot read config file {path}",
            [(ROOT_PATH, str(e))],
            {"path": str(path)},
        ) from e


# --- resolution ------------------------------------------------------------


def _format_loc(loc: Sequence[Union[str, int]]) -> str:
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path or ROOT_PATH


def _decode(raw: Union[str, bytes, Mapping[str, Any], None]) -> Mapping[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ConfigValidationError("Malformed configuration JSON", [(ROOT_PATH, str(e))]) from e
    else:
        data = raw
    if not isinstance(data, Mapping):
        raise ConfigValidationError(
            "Configuration must be a JSON object",
            [(ROOT_PATH, f"expected an object, got {type(data).__name__}")],
        )
    return data


def _validate(data: Mapping[str, Any]) -> ConfigFile:
    try:
        return ConfigFile.model_validate(dict(data))
    except ValidationError as e:
        issues = [(_format_loc(err["loc"]), err["msg"]) for err in e.errors()]
        raise ConfigValidationError("Invalid configuration", issues) from e


def _apply_setting(
    rule_id: str,
    setting: Union[bool, str, RuleSetting],
    enabled: dict[str, bool],
    overrides: dict[str, Severity],
) -> Optional[str]:
    """Apply one rules entry; return a reason string if it is invalid."""
    if isinstance(setting, bool):
        enabled[rule_id] = setting
    elif isinstance(setting, str):
        if setting.strip().lower() == "off":
            enabled[rule_id] = False
            return None
        try:
            overrides[rule_id] = Severity.parse(setting)
        except ValueError as e:
            return f"{e} (or 'off')"
        enabled[rule_id] = True
    else:
        enabled[rule_id] = setting.enabled
        if setting.severity is not None:
            overrides[rule_id] = setting.severity
    return None


def resolve(
    defaults: EffectiveConfig,
    file_config_raw: Union[str, bytes, Mapping[str, Any], None],
    cli_overrides: Optional[CliOverrides],
    registry: RuleRegistry,
) -> EffectiveConfig:
    """
    Merge defaults, the config file and CLI overrides into an EffectiveConfig.

    The file layer is validated in full before merging; every problem found is
    reported at once in ConfigValidationError.issues. Valid custom rules are
    registered into registry.
    """
    cli = cli_overrides or CliOverrides()
    file_config = _validate(_decode(file_config_raw))
    issues: list[tuple[str, str]] = []

    known = set(registry.ids())
    custom_rules: list[CustomRuleSpec] = []
    for i, spec in enumerate(file_config.custom_rules):
        if spec.id in known:
            issues.append((f"customRules[{i}].id", f"rule id {spec.id!r} is already registered"))
            continue
        known.add(spec.id)
        custom_rules.append(spec)

    enabled = dict(defaults.enabled_rules)
    overrides = dict(defaults.severity_overrides)
    for spec in custom_rules:
        enabled.setdefault(spec.id, spec.enabled_by_default)

    for rule_id, setting in file_config.rules.items():
        if rule_id not in known:
            issues.append((f"rules.{rule_id}", "unknown rule id"))
            continue
        reason = _apply_setting(rule_id, setting, enabled, overrides)
        if reason is not None:
            issues.append((f"rules.{rule_id}", reason))

    for rule_id in cli.enable:
        if rule_id not in known:
            issues.append(("--enable", f"unknown rule id {rule_id!r}"))
        enabled[rule_id] = True
    for rule_id in cli.disable:
        if rule_id not in known:
            issues.append(("--disable", f"unknown rule id {rule_id!r}"))
        enabled[rule_id] = False

    if issues:
        raise ConfigValidationError("Invalid configuration", issues)

    for spec in custom_rules:
        registry.register(spec)
    if custom_rules:
        logger.info("Registered %d custom rule(s)", len(custom_rules))

    ignore_patterns = (
        tuple(file_config.ignore_patterns)
        if file_config.ignore_patterns is not None
        else defaults.ignore_patterns
    ) + tuple(cli.ignore_patterns)

    return EffectiveConfig(
        enabled_rules=enabled,
        severity_overrides=overrides,
        ignore_patterns=ignore_patterns,
        custom_rules=defaults.custom_rules + tuple(custom_rules),
        fail_threshold=cli.fail_threshold or file_config.fail_threshold or defaults.fail_threshold,
        extensions=tuple(file_config.extensions) if file_config.extensions is not None else defaults.extensions,
    )
