# Pattern matcher: evaluate RuleDefinitions against one CodeUnit.
# One function per matcher kind, selected through _MATCHERS; rules are data.

from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, NamedTuple, Optional, Union

from webaudit.errors import RuleExecutionError
from webaudit.extractor import CallShape, CodeUnit, ObjectShape, Position, PropertyShape, ValueShape
from webaudit.findings.models import RawMatch
from webaudit.rules.base import (
    ArgumentPredicate,
    CallShapeMatcher,
    LiteralMatcher,
    PropertyCombinationMatcher,
    PropertyPredicate,
    RegexMatcher,
    RuleDefinition,
)

logger = logging.getLogger(__name__)

SNIPPET_LIMIT = 160


class _Hit(NamedTuple):
    start: Position
    end: Position
    captures: dict[str, str]


def snippet_of(text: str) -> str:
    """First non-empty line of text, trimmed for display."""
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line if len(line) <= SNIPPET_LIMIT else line[: SNIPPET_LIMIT - 3] + "..."
    return ""


# --- predicates ------------------------------------------------------------


def _subject(value: ValueShape) -> str:
    literal = value.literal_text()
    return literal if literal is not None else value.text


def _same(a: str, b: str, ignore_case: bool) -> bool:
    return a.casefold() == b.casefold() if ignore_case else a == b


def check_predicate(pred: Union[PropertyPredicate, ArgumentPredicate], value: Optional[ValueShape]) -> bool:
    """Evaluate one predicate op against a value; None means absent."""
    op = pred.op
    if op == "present":
        return value is not None
    if op == "missing":
        return value is None
    if op == "unset-or-false":
        if value is None:
            return True
        literal = value.literal_text()
        return literal is not None and literal.strip().lower() == "false"
    if value is None:
        return False
    if op == "is-true":
        literal = value.literal_text()
        return literal is not None and literal.strip().lower() == "true"
    if op in ("equals", "not-equals"):
        literal = value.literal_text()
        if literal is None:
            return False
        return _same(literal, pred.value or "", pred.ignore_case) == (op == "equals")
    if op in ("matches", "not-matches"):
        found = pred.compiled().search(_subject(value)) is not None
        return found == (op == "matches")
    if op == "unconditional-grant":
        return value.function is not None and value.function.unconditional_grant
    raise ValueError(f"unsupported predicate op {op!r}")


def _lookup(shape: Union[ObjectShape, ValueShape], keys: Iterable[str]) -> Optional[PropertyShape]:
    for key in keys:
        prop = shape.get(key)
        if prop is not None:
            return prop
    return None


def _argument_holds(pred: ArgumentPredicate, arguments: tuple[ValueShape, ...]) -> bool:
    if pred.index is not None:
        candidates: list[Optional[ValueShape]] = [
            arguments[pred.index] if pred.index < len(arguments) else None
        ]
    else:
        candidates = list(arguments)

    for arg in candidates:
        if pred.key is None:
            target = arg
        elif arg is None:
            # no options argument: every key is missing
            target = None
        elif not arg.is_object:
            # options built elsewhere (variable, call): undecidable
            continue
        else:
            prop = _lookup(arg, pred.key)
            target = prop.value if prop is not None else None
        if check_predicate(pred, target):
            return True
    return False


# --- matcher kinds ---------------------------------------------------------


def _match_literal(matcher: LiteralMatcher, unit: CodeUnit) -> Iterator[_Hit]:
    haystack = unit.text.lower() if matcher.ignore_case else unit.text
    for value in matcher.values:
        needle = value.lower() if matcher.ignore_case else value
        if matcher.mode == "equals":
            found = haystack == needle
        elif matcher.mode == "suffix":
            found = haystack.endswith(needle)
        else:
            found = needle in haystack
        if found:
            yield _Hit(unit.start, unit.end, {"match": value})
            return


def _offset_position(unit: CodeUnit, index: int) -> Position:
    """Absolute position of a character offset inside unit.text."""
    text = unit.text
    # string units hold the unquoted value; skip the opening quote
    lead = 1 if unit.kind == "string" else 0
    newlines = text.count("\n", 0, index)
    if newlines == 0:
        return Position(unit.start.line, unit.start.column + lead + index)
    return Position(unit.start.line + newlines, index - text.rfind("\n", 0, index))


def _match_regex(matcher: RegexMatcher, unit: CodeUnit) -> Iterator[_Hit]:
    for m in matcher.compiled().finditer(unit.text):
        if m.end() == m.start():
            continue
        captures = {"match": m.group(0)}
        captures.update({k: v for k, v in m.groupdict().items() if v is not None})
        yield _Hit(_offset_position(unit, m.start()), _offset_position(unit, m.end()), captures)


def _match_call_shape(matcher: CallShapeMatcher, unit: CodeUnit) -> Iterator[_Hit]:
    shape = unit.shape
    if not isinstance(shape, CallShape):
        return
    if matcher.compiled().search(shape.callee) is None:
        return
    if not all(_argument_holds(pred, shape.arguments) for pred in matcher.arguments):
        return
    captures = {"callee": shape.callee, "name": shape.name}
    for i, arg in enumerate(shape.arguments):
        captures[f"arg{i}"] = arg.text
    yield _Hit(unit.start, unit.end, captures)


def _match_property_combination(matcher: PropertyCombinationMatcher, unit: CodeUnit) -> Iterator[_Hit]:
    shape = unit.shape
    if not isinstance(shape, ObjectShape):
        return
    if matcher.unconditional and shape.conditional:
        return
    anchor: Optional[PropertyShape] = None
    for i, pred in enumerate(matcher.properties):
        prop = _lookup(shape, pred.key)
        if not check_predicate(pred, prop.value if prop is not None else None):
            return
        if i == 0:
            anchor = prop

    captures: dict[str, str] = {}
    start, end = unit.start, unit.end
    if anchor is not None:
        captures = {"key": anchor.key, "value": anchor.value.text}
        if unit.kind == "headers":
            start, end = anchor.start, anchor.end
    yield _Hit(start, end, captures)


_MATCHERS: dict[str, Callable[..., Iterator[_Hit]]] = {
    "literal": _match_literal,
    "regex": _match_regex,
    "call-shape": _match_call_shape,
    "property-combination": _match_property_combination,
}


def unit_kinds_for(matcher) -> frozenset[str]:
    """Which CodeUnit kinds a matcher inspects."""
    if matcher.kind == "call-shape":
        return frozenset({"call"})
    if matcher.kind == "property-combination":
        if matcher.within == "any":
            return frozenset({"object", "headers"})
        return frozenset({matcher.within})
    return frozenset({matcher.within})


# --- entry points ----------------------------------------------------------


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_message(template: str, captures: dict[str, str]) -> str:
    """Fill {placeholders} from captures; unknown placeholders stay as written."""
    try:
        return template.format_map(_Placeholders(captures))
    except (ValueError, IndexError, KeyError, AttributeError, TypeError):
        return template


def evaluate(
    unit: CodeUnit,
    rules: Iterable[RuleDefinition],
    errors: Optional[list[RuleExecutionError]] = None,
) -> list[RawMatch]:
    """
    Run every applicable rule against one code unit.

    A rule that raises is recorded in errors (when given) and logged; the
    remaining rules still run.
    """
    matches: list[RawMatch] = []
    for rule in rules:
        if unit.kind not in unit_kinds_for(rule.matcher) or not rule.applies_to.accepts(unit.path):
            continue
        try:
            hits = list(_MATCHERS[rule.matcher.kind](rule.matcher, unit))
        except Exception as exc:
            error = RuleExecutionError(rule.id, unit.path, unit.start.line, str(exc) or type(exc).__name__)
            logger.warning("%s", error)
            if errors is not None:
                errors.append(error)
            continue
        for hit in hits:
            snippet = snippet_of(unit.text)
            captures = {"snippet": snippet, **hit.captures}
            matches.append(
                RawMatch(
                    rule_id=rule.id,
                    path=unit.path,
                    start=hit.start,
                    end=hit.end,
                    snippet=snippet,
                    captures=captures,
                )
            )
    return matches
