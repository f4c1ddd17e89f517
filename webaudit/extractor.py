"""
CodeUnit extraction: turn a parsed JS/TS file into inspectable fragments.

A file yields a lazy, finite, non-restartable generator of CodeUnits in
document order. Unit kinds:

- ``call``      call_expression / new_expression, with a CallShape
                (callee text, last member name, argument ValueShapes)
- ``object``    object literal, with an ObjectShape (key -> ValueShape).
                An object passed directly as a call argument is located at
                that call, so ``cors({...})`` is reported where ``cors`` is.
- ``headers``   one per statement block that sets response headers through
                ``setHeader/header/set/append(name, value)``; the header names
                become the ObjectShape's properties
- ``statement`` expression statements, declarations, throw and return
                statements, raw text only
- ``string``    string literals without substitutions; text is the unquoted value

Everything a matcher needs is materialized here, including the shallow
"always grants" analysis of function-valued properties, so matchers never
touch the tree.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from tree_sitter import Node as TSNode

from webaudit.context import FUNCTION_NODE_TYPES, FileContext, get_end_line_col, get_line_col, get_source_span

logger = logging.getLogger(__name__)

UNIT_KINDS = ("call", "object", "headers", "statement", "string")

CALL_NODE_TYPES = frozenset({"call_expression", "new_expression"})
BLOCK_NODE_TYPES = frozenset({"statement_block", "program"})
STATEMENT_NODE_TYPES = frozenset(
    {
        "expression_statement",
        "lexical_declaration",
        "variable_declaration",
        "throw_statement",
        "return_statement",
    }
)
STRING_NODE_TYPES = frozenset({"string", "template_string"})
# Wrappers that do not change the runtime value: (x), x!, x as T, <T>x
TRANSPARENT_NODE_TYPES = frozenset(
    {
        "parenthesized_expression",
        "non_null_expression",
        "as_expression",
        "satisfies_expression",
        "type_assertion",
    }
)
LOOP_NODE_TYPES = frozenset(
    {"for_statement", "for_in_statement", "while_statement", "do_statement"}
)
CONDITIONAL_NODE_TYPES = frozenset(
    {"if_statement", "ternary_expression", "switch_statement", "catch_clause"}
) | LOOP_NODE_TYPES

HEADER_SETTERS = frozenset({"setHeader", "header", "set", "append"})
GRANT_CALLBACK_NAMES = frozenset({"callback", "cb", "done"})

_WS_RE = re.compile(r"\s+")
_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}


@dataclass(frozen=True)
class Position:
    """1-based line and column."""

    line: int
    column: int


@dataclass(frozen=True)
class FunctionShape:
    params: tuple[str, ...]
    unconditional_grant: bool


@dataclass(frozen=True)
class ValueShape:
    """A value in source: an argument or a property value."""

    text: str
    node_type: str
    start: Position
    end: Position
    literal: Union[str, bool, None] = None
    properties: Optional[tuple["PropertyShape", ...]] = None
    function: Optional[FunctionShape] = None

    @property
    def is_object(self) -> bool:
        return self.properties is not None

    def literal_text(self) -> Optional[str]:
        """String form of a literal value ("true"/"false" for booleans), else None."""
        if isinstance(self.literal, bool):
            return "true" if self.literal else "false"
        return self.literal

    def get(self, key: str) -> Optional["PropertyShape"]:
        return _find_property(self.properties or (), key)


@dataclass(frozen=True)
class PropertyShape:
    key: str
    value: ValueShape
    start: Position
    end: Position
    text: str


@dataclass(frozen=True)
class CallShape:
    callee: str
    name: str
    arguments: tuple[ValueShape, ...]


@dataclass(frozen=True)
class ObjectShape:
    properties: tuple[PropertyShape, ...]
    conditional: bool = False

    def get(self, key: str) -> Optional[PropertyShape]:
        return _find_property(self.properties, key)


@dataclass(frozen=True)
class CodeUnit:
    kind: str
    path: Path
    text: str
    node_type: str
    start: Position
    end: Position
    shape: Union[CallShape, ObjectShape, None] = None


def _find_property(properties: tuple[PropertyShape, ...], key: str) -> Optional[PropertyShape]:
    """Case-insensitive property lookup; the last duplicate wins, as at runtime."""
    wanted = key.lower()
    found = None
    for prop in properties:
        if prop.key.lower() == wanted:
            found = prop
    return found


# --- helpers ---------------------------------------------------------------


def _text(context: FileContext, node: TSNode) -> str:
    return get_source_span(context, node)


def _start(node: TSNode) -> Position:
    return Position(*get_line_col(node))


def _end(node: TSNode) -> Position:
    return Position(*get_end_line_col(node))


def _named_children(node: Optional[TSNode]) -> list[TSNode]:
    if node is None:
        return []
    return [c for c in node.named_children if c.type != "comment"]


def _unwrap(node: TSNode) -> TSNode:
    while node.type in TRANSPARENT_NODE_TYPES:
        inner = _named_children(node)
        if not inner:
            break
        node = inner[0]
    return node


def _unquote(raw: str) -> str:
    body = raw[1:-1] if len(raw) >= 2 else raw
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def _string_literal(context: FileContext, node: TSNode) -> Optional[str]:
    """Unquoted value of a string or substitution-free template string."""
    if node.type == "string":
        return _unquote(_text(context, node))
    if node.type == "template_string":
        if any(c.type == "template_substitution" for c in node.named_children):
            return None
        return _unquote(_text(context, node))
    return None


def _compact(text: str) -> str:
    return _WS_RE.sub("", text).replace("?.", ".")


def _callee_node(call: TSNode) -> Optional[TSNode]:
    if call.type == "new_expression":
        return call.child_by_field_name("constructor")
    return call.child_by_field_name("function")


def _callee_name(context: FileContext, callee: TSNode) -> str:
    callee = _unwrap(callee)
    if callee.type == "member_expression":
        prop = callee.child_by_field_name("property")
        if prop is not None:
            return _text(context, prop)
    return _compact(_text(context, callee))


def _call_arguments(call: TSNode) -> list[TSNode]:
    args = call.child_by_field_name("arguments")
    if args is None:
        return []
    if args.type == "template_string":
        # tagged template: tag`...`
        return [args]
    return _named_children(args)


def _property_key(context: FileContext, key: TSNode) -> str:
    if key.type == "computed_property_name":
        inner = _named_children(key)
        if inner:
            literal = _string_literal(context, inner[0])
            return literal if literal is not None else _text(context, inner[0])
    literal = _string_literal(context, key)
    if literal is not None:
        return literal
    return _text(context, key)


def _conditional_ancestor(node: TSNode) -> bool:
    """True if node sits under a conditional or loop within its function."""
    current = node.parent
    while current is not None and current.type not in FUNCTION_NODE_TYPES:
        if current.type in CONDITIONAL_NODE_TYPES:
            return True
        current = current.parent
    return False


def _has_substitution(node: TSNode) -> bool:
    return any(c.type == "template_substitution" for c in node.named_children)


# --- value shapes ----------------------------------------------------------


def value_shape(context: FileContext, node: TSNode) -> ValueShape:
    """Build the ValueShape for an expression node."""
    inner = _unwrap(node)
    literal: Union[str, bool, None] = _string_literal(context, inner)
    if inner.type == "true":
        literal = True
    elif inner.type == "false":
        literal = False

    properties = None
    if inner.type == "object":
        properties = tuple(_object_properties(context, inner))

    function = None
    if inner.type in FUNCTION_NODE_TYPES:
        function = function_shape(context, inner)

    return ValueShape(
        text=_text(context, node),
        node_type=inner.type,
        start=_start(node),
        end=_end(node),
        literal=literal,
        properties=properties,
        function=function,
    )


def _object_properties(context: FileContext, obj: TSNode) -> Iterator[PropertyShape]:
    for child in _named_children(obj):
        if child.type == "pair":
            key = child.child_by_field_name("key")
            value = child.child_by_field_name("value")
            if key is None or value is None:
                continue
            yield PropertyShape(
                key=_property_key(context, key),
                value=value_shape(context, value),
                start=_start(child),
                end=_end(child),
                text=_text(context, child),
            )
        elif child.type == "shorthand_property_identifier":
            yield PropertyShape(
                key=_text(context, child),
                value=value_shape(context, child),
                start=_start(child),
                end=_end(child),
                text=_text(context, child),
            )
        elif child.type == "method_definition":
            name = child.child_by_field_name("name")
            if name is None:
                continue
            yield PropertyShape(
                key=_property_key(context, name),
                value=value_shape(context, child),
                start=_start(child),
                end=_end(child),
                text=_text(context, child),
            )


# --- "always grants" analysis ----------------------------------------------


def _parameter_names(context: FileContext, func: TSNode) -> tuple[str, ...]:
    single = func.child_by_field_name("parameter")
    if single is not None:
        return (_text(context, single),)
    names: list[str] = []
    for param in _named_children(func.child_by_field_name("parameters")):
        target = param
        if param.type in ("required_parameter", "optional_parameter"):
            target = param.child_by_field_name("pattern") or param
        elif param.type == "assignment_pattern":
            target = param.child_by_field_name("left") or param
        names.append(_text(context, target) if target.type == "identifier" else "")
    return tuple(names)


def _is_grant_value(context: FileContext, node: Optional[TSNode], origin: Optional[str]) -> bool:
    if node is None:
        return False
    node = _unwrap(node)
    if node.type == "true":
        return True
    return bool(origin) and node.type == "identifier" and _text(context, node) == origin


def _returned_grants(context: FileContext, expr: TSNode, origin: Optional[str]) -> Iterator[TSNode]:
    """Yield sub-expressions of a returned value that grant the origin."""
    expr = _unwrap(expr)
    if _is_grant_value(context, expr, origin):
        yield expr
    elif expr.type == "ternary_expression":
        for field in ("consequence", "alternative"):
            branch = expr.child_by_field_name(field)
            if branch is not None:
                yield from _returned_grants(context, branch, origin)
    elif expr.type == "binary_expression":
        operator = expr.child_by_field_name("operator")
        right = expr.child_by_field_name("right")
        if operator is not None and operator.type in ("||", "&&") and right is not None:
            yield from _returned_grants(context, right, origin)


def _grant_sites(
    context: FileContext,
    body: TSNode,
    origin: Optional[str],
    callbacks: frozenset[str],
) -> Iterator[TSNode]:
    """Grant calls and grant returns in body, not descending into nested functions."""
    stack = [body]
    while stack:
        node = stack.pop()
        if node.type == "call_expression":
            fn = node.child_by_field_name("function")
            if fn is not None and fn.type == "identifier" and _text(context, fn) in callbacks:
                args = _call_arguments(node)
                if len(args) >= 2 and _is_grant_value(context, args[1], origin):
                    yield node
        elif node.type == "return_statement":
            returned = _named_children(node)
            if returned:
                yield from _returned_grants(context, returned[0], origin)
        for child in reversed(node.named_children):
            if child.type not in FUNCTION_NODE_TYPES:
                stack.append(child)


def _references(text: str, name: Optional[str]) -> bool:
    if not name:
        return True
    return re.search(rf"(?<![\w$]){re.escape(name)}(?![\w$])", text) is not None


def _guard_text(context: FileContext, node: TSNode, came_from: TSNode) -> Optional[str]:
    """Condition text guarding came_from inside node, or None if node is not a guard."""
    if node.type in ("if_statement", "ternary_expression"):
        condition = node.child_by_field_name("condition")
        if condition is not None and condition != came_from:
            return _text(context, condition)
    elif node.type == "binary_expression":
        operator = node.child_by_field_name("operator")
        left = node.child_by_field_name("left")
        if operator is not None and operator.type in ("&&", "||") and left is not None and left != came_from:
            return _text(context, left)
    elif node.type == "switch_statement":
        value = node.child_by_field_name("value")
        if value is not None:
            return _text(context, node)[: value.end_byte - node.start_byte]
    elif node.type in LOOP_NODE_TYPES:
        body = node.child_by_field_name("body")
        if body is None or body != came_from:
            return None
        if node.type == "do_statement":
            condition = node.child_by_field_name("condition")
            return _text(context, condition) if condition is not None else None
        return _text(context, node)[: body.start_byte - node.start_byte]
    return None


def _exits(node: TSNode) -> bool:
    """True if node is or contains a return/throw (not inside nested functions)."""
    if node.type in ("return_statement", "throw_statement"):
        return True
    return any(_exits(c) for c in node.named_children if c.type not in FUNCTION_NODE_TYPES)


def _early_exit_guard(context: FileContext, block: TSNode, came_from: TSNode, origin: Optional[str]) -> bool:
    """`if (!allowed.includes(origin)) return cb(err);` before the grant in the same block."""
    for sibling in block.named_children:
        if sibling == came_from or sibling.start_byte >= came_from.start_byte:
            break
        if sibling.type != "if_statement":
            continue
        condition = sibling.child_by_field_name("condition")
        consequence = sibling.child_by_field_name("consequence")
        if condition is None or consequence is None:
            continue
        if _references(_text(context, condition), origin) and _exits(consequence):
            return True
    return False


def _is_guarded(context: FileContext, site: TSNode, func: TSNode, origin: Optional[str]) -> bool:
    came_from = site
    current = site.parent
    while current is not None and current != func:
        guard = _guard_text(context, current, came_from)
        if guard is not None and _references(guard, origin):
            return True
        if current.type == "statement_block" and _early_exit_guard(context, current, came_from, origin):
            return True
        came_from = current
        current = current.parent
    return False


def function_shape(context: FileContext, func: TSNode) -> FunctionShape:
    """
    Parameters plus the shallow "always grants" verdict for an origin callback.

    The first parameter is the candidate origin, the second the callback.
    A grant is the callback called with ``true`` (or the origin) as second
    argument, or a returned ``true``/origin. It is unconditional when no
    enclosing if/ternary/logical/switch/loop condition mentions the origin and
    no earlier early-exit check on the origin precedes it. Nested functions
    are opaque.
    """
    params = _parameter_names(context, func)
    origin = params[0] if params and params[0] else None
    callbacks = set(GRANT_CALLBACK_NAMES)
    if len(params) > 1 and params[1]:
        callbacks.add(params[1])

    body = func.child_by_field_name("body")
    if body is None:
        return FunctionShape(params=params, unconditional_grant=False)

    if body.type == "statement_block":
        sites = _grant_sites(context, body, origin, frozenset(callbacks))
    else:
        # expression-bodied arrow: the body is the returned value
        sites = _returned_grants(context, body, origin)
        if _unwrap(body).type == "call_expression":
            sites = _grant_sites(context, body, origin, frozenset(callbacks))

    unconditional = any(not _is_guarded(context, site, func, origin) for site in sites)
    return FunctionShape(params=params, unconditional_grant=unconditional)


# --- unit builders ---------------------------------------------------------


def _call_unit(context: FileContext, node: TSNode) -> Optional[CodeUnit]:
    callee = _callee_node(node)
    if callee is None:
        return None
    shape = CallShape(
        callee=_compact(_text(context, callee)),
        name=_callee_name(context, callee),
        arguments=tuple(value_shape(context, arg) for arg in _call_arguments(node)),
    )
    return CodeUnit(
        kind="call",
        path=context.path,
        text=_text(context, node),
        node_type=node.type,
        start=_start(node),
        end=_end(node),
        shape=shape,
    )


def _object_anchor(node: TSNode) -> TSNode:
    """The call an object literal is passed to directly, else the object itself."""
    parent = node.parent
    if parent is not None and parent.type == "arguments":
        call = parent.parent
        if call is not None and call.type in CALL_NODE_TYPES:
            return call
    return node


def _object_unit(context: FileContext, node: TSNode) -> CodeUnit:
    anchor = _object_anchor(node)
    return CodeUnit(
        kind="object",
        path=context.path,
        text=_text(context, anchor),
        node_type=node.type,
        start=_start(anchor),
        end=_end(anchor),
        shape=ObjectShape(
            properties=tuple(_object_properties(context, node)),
            conditional=_conditional_ancestor(node),
        ),
    )


def _header_entries(context: FileContext, block: TSNode) -> Iterator[PropertyShape]:
    for statement in _named_children(block):
        if statement.type != "expression_statement":
            continue
        expressions = _named_children(statement)
        if not expressions:
            continue
        expr = expressions[0]
        if expr.type == "await_expression":
            inner = _named_children(expr)
            if not inner:
                continue
            expr = inner[0]
        if expr.type != "call_expression":
            continue
        callee = expr.child_by_field_name("function")
        if callee is None or _callee_name(context, callee) not in HEADER_SETTERS:
            continue
        args = _call_arguments(expr)
        if len(args) < 2:
            continue
        name = _string_literal(context, _unwrap(args[0]))
        # HTTP header names only; map.set('origin', x) is not a header
        if name is None or "-" not in name:
            continue
        yield PropertyShape(
            key=name,
            value=value_shape(context, args[1]),
            start=_start(expr),
            end=_end(expr),
            text=_text(context, expr),
        )


def _headers_unit(context: FileContext, node: TSNode) -> Optional[CodeUnit]:
    entries = tuple(_header_entries(context, node))
    if not entries:
        return None
    return CodeUnit(
        kind="headers",
        path=context.path,
        text=_text(context, node),
        node_type=node.type,
        start=_start(node),
        end=_end(node),
        shape=ObjectShape(properties=entries, conditional=_conditional_ancestor(node)),
    )


def _string_unit(context: FileContext, node: TSNode) -> Optional[CodeUnit]:
    if node.type == "template_string" and _has_substitution(node):
        return None
    literal = _string_literal(context, node)
    if literal is None:
        return None
    return CodeUnit(
        kind="string",
        path=context.path,
        text=literal,
        node_type=node.type,
        start=_start(node),
        end=_end(node),
    )


def _statement_unit(context: FileContext, node: TSNode) -> CodeUnit:
    return CodeUnit(
        kind="statement",
        path=context.path,
        text=_text(context, node),
        node_type=node.type,
        start=_start(node),
        end=_end(node),
    )


def extract_units(context: FileContext) -> Iterator[CodeUnit]:
    """
    Lazily yield the CodeUnits of a parsed file in document order.

    Units are built on demand while walking the tree, so the generator can
    only be consumed once.
    """
    count = 0
    stack = [context.root_node]
    while stack:
        node = stack.pop()
        unit: Optional[CodeUnit] = None
        if node.type in CALL_NODE_TYPES:
            unit = _call_unit(context, node)
        elif node.type == "object":
            unit = _object_unit(context, node)
        elif node.type in BLOCK_NODE_TYPES:
            unit = _headers_unit(context, node)
        elif node.type in STATEMENT_NODE_TYPES:
            unit = _statement_unit(context, node)
        elif node.type in STRING_NODE_TYPES:
            unit = _string_unit(context, node)

        if unit is not None:
            count += 1
            yield unit

        stack.extend(reversed(node.children))
    logger.debug("Extracted %d code unit(s) from %s", count, context.path)
