# Rule definitions as data: a RuleDefinition carries a tagged matcher spec
# (literal, regex, call-shape, property-combination) that matcher.evaluate()
# dispatches on. Adding a rule means adding a catalog entry, not a class.

from __future__ import annotations

import re
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from webaudit.severity import Severity

JS_TS_EXTENSIONS: tuple[str, ...] = (".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx", ".mts", ".cts")

PredicateOp = Literal[
    "present",
    "missing",
    "equals",
    "not-equals",
    "matches",
    "not-matches",
    "is-true",
    "unset-or-false",
    "unconditional-grant",
]

_NEEDS_VALUE = {"equals", "not-equals"}
_NEEDS_PATTERN = {"matches", "not-matches"}


def _compile(pattern: str, ignore_case: bool) -> re.Pattern[str]:
    return re.compile(pattern, re.IGNORECASE if ignore_case else 0)


class _Spec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class _Predicate(_Spec):
    op: PredicateOp
    value: Optional[str] = None
    pattern: Optional[str] = None
    ignore_case: bool = Field(True, alias="ignoreCase")

    @model_validator(mode="after")
    def _check_operands(self) -> "_Predicate":
        if self.op in _NEEDS_VALUE and self.value is None:
            raise ValueError(f"op {self.op!r} requires 'value'")
        if self.op in _NEEDS_PATTERN:
            if self.pattern is None:
                raise ValueError(f"op {self.op!r} requires 'pattern'")
            try:
                _compile(self.pattern, self.ignore_case)
            except re.error as e:
                raise ValueError(f"invalid pattern {self.pattern!r}: {e}") from e
        return self

    def compiled(self) -> re.Pattern[str]:
        return _compile(self.pattern or "", self.ignore_case)


class PropertyPredicate(_Predicate):
    """Predicate on one property of an object (any of the alternative key names)."""

    key: tuple[str, ...] = Field(..., min_length=1)

    @field_validator("key", mode="before")
    @classmethod
    def _key_list(cls, v):
        return (v,) if isinstance(v, str) else v


class ArgumentPredicate(_Predicate):
    """
    Predicate on a call argument.

    index selects the argument (None: any argument must satisfy it). With key,
    the predicate applies to that property of an object-literal argument.
    """

    index: Optional[int] = Field(None, ge=0)
    key: Optional[tuple[str, ...]] = None

    @field_validator("key", mode="before")
    @classmethod
    def _key_list(cls, v):
        return (v,) if isinstance(v, str) else v


class LiteralMatcher(_Spec):
    kind: Literal["literal"] = "literal"
    values: tuple[str, ...] = Field(..., min_length=1)
    mode: Literal["contains", "equals", "suffix"] = "contains"
    ignore_case: bool = Field(False, alias="ignoreCase")
    within: Literal["string", "statement"] = "string"


class RegexMatcher(_Spec):
    kind: Literal["regex"] = "regex"
    pattern: str
    ignore_case: bool = Field(False, alias="ignoreCase")
    within: Literal["statement", "string"] = "statement"

    @field_validator("pattern")
    @classmethod
    def _valid_pattern(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid pattern {v!r}: {e}") from e
        return v

    def compiled(self) -> re.Pattern[str]:
        return _compile(self.pattern, self.ignore_case)


class CallShapeMatcher(_Spec):
    kind: Literal["call-shape"] = "call-shape"
    callee: str
    arguments: tuple[ArgumentPredicate, ...] = ()

    @field_validator("callee")
    @classmethod
    def _valid_callee(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid callee pattern {v!r}: {e}") from e
        return v

    def compiled(self) -> re.Pattern[str]:
        return re.compile(self.callee)


class PropertyCombinationMatcher(_Spec):
    kind: Literal["property-combination"] = "property-combination"
    properties: tuple[PropertyPredicate, ...] = Field(..., min_length=1)
    within: Literal["object", "headers", "any"] = "any"
    unconditional: bool = False


Matcher = Annotated[
    Union[LiteralMatcher, RegexMatcher, CallShapeMatcher, PropertyCombinationMatcher],
    Field(discriminator="kind"),
]


class AppliesTo(_Spec):
    """Which files a rule inspects: by extension, optionally by content substring."""

    extensions: tuple[str, ...] = JS_TS_EXTENSIONS
    contains: Optional[str] = None

    def accepts(self, path: Path, source: Optional[str] = None) -> bool:
        if path.suffix.lower() not in self.extensions:
            return False
        if self.contains is not None and source is not None:
            return self.contains in source
        return True


class RuleDefinition(_Spec):
    """One detectable pattern: identity, category, severity, matcher and message."""

    id: str = Field(..., pattern=r"^[a-z0-9][a-z0-9-]*$")
    category: str = Field(..., pattern=r"^[a-z0-9][a-z0-9-]*$")
    severity: Severity
    matcher: Matcher
    message: str = "{snippet}"
    name: str = ""
    description: str = ""
    remediation: Optional[str] = None
    applies_to: AppliesTo = Field(default_factory=AppliesTo, alias="appliesTo")
    enabled_by_default: bool = Field(True, alias="enabledByDefault")

    @field_validator("severity", mode="before")
    @classmethod
    def _parse_severity(cls, v):
        return Severity.parse(v)

    @property
    def title(self) -> str:
        return self.name or self.id
