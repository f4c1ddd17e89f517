# Per-file analysis context: store file path, source code, AST, and helper methods.
# Handles reading/decoding/parsing JS/TS files; unreadable or undecodable files
# raise FileReadError, malformed files still yield a context with parse errors.

import logging
from pathlib import Path
from typing import Optional

from tree_sitter import Node as TSNode
from tree_sitter import Parser, Tree

from webaudit.errors import FileReadError
from webaudit.parser import create_parser, get_language, parse_bytes

logger = logging.getLogger(__name__)

FUNCTION_NODE_TYPES = frozenset(
    {
        "function_declaration",
        "function_expression",
        "arrow_function",
        "generator_function",
        "generator_function_declaration",
        "method_definition",
    }
)


def count_tree_stats(root: TSNode) -> tuple[int, int]:
    """
    Return (total node count, function count) for the tree.

    Walks with an explicit stack. Only named nodes count as functions.
    """
    nodes = 0
    functions = 0
    stack = [root]
    while stack:
        node = stack.pop()
        nodes += 1
        if node.is_named and node.type in FUNCTION_NODE_TYPES:
            functions += 1
        stack.extend(node.children)
    return nodes, functions


class FileContext:
    """
    Per-file state for static analysis: path, raw source bytes, and AST.

    The extractor uses context.path, context.source and context.tree. Use
    get_source_span(context, node) and get_line_col(node) for locations/snippets.
    """

    def __init__(
        self,
        path: Path,
        source: bytes,
        tree: Tree,
        *,
        has_parse_errors: bool = False,
    ) -> None:
        self.path = path
        self.source = source
        self.tree = tree
        self.has_parse_errors = has_parse_errors

    @property
    def root_node(self) -> TSNode:
        """Convenience access to the AST root."""
        return self.tree.root_node


def get_source_span(context: FileContext, node: TSNode) -> str:
    """Return the substring of context.source for the given node's byte range."""
    return context.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def get_line_col(node: TSNode, one_based: bool = True) -> tuple[int, int]:
    """
    Return (line, column) for the node's start position.

    Tree-sitter uses 0-based (row, col) with byte columns. If one_based=True
    (default), returns 1-based line and column for display.
    """
    row, col = node.start_point
    if one_based:
        return row + 1, col + 1
    return row, col


def get_end_line_col(node: TSNode) -> tuple[int, int]:
    """Return the 1-based (line, column) of the node's end position (exclusive)."""
    row, col = node.end_point
    return row + 1, col + 1


def read_source(path: Path) -> bytes:
    """
    Read and validate a source file as UTF-8.

    Raises:
        FileReadError: the file is missing, unreadable, or not valid UTF-8.
    """
    try:
        source = path.read_bytes()
    except OSError as e:
        raise FileReadError(path, e.strerror or str(e)) from e
    try:
        source.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FileReadError(path, f"not valid UTF-8 ({e.reason} at byte {e.start})") from e
    return source


def create_context(
    path: Path,
    parser: Optional[Parser] = None,
) -> FileContext:
    """
    Read a JS/TS file and parse it into a FileContext (path, source, AST).

    - Unreadable/undecodable file or unsupported suffix: raises FileReadError.
    - Malformed source (syntax errors): still returns a FileContext with the
      tree and has_parse_errors=True; logs a warning.
    - Success: logs node count and function count.
    """
    if parser is None:
        if get_language(path) is None:
            raise FileReadError(path, f"unsupported file type {path.suffix or '(none)'}")
        parser = create_parser(path)

    source = read_source(path)
    tree = parse_bytes(source, parser=parser)
    has_errors = tree.root_node.has_error
    if has_errors:
        logger.warning("File %s parsed with syntax errors; AST may be incomplete", path)

    node_count, func_count = count_tree_stats(tree.root_node)
    logger.info(
        "Parsed %s: %d nodes, %d function(s)%s",
        path,
        node_count,
        func_count,
        " (with parse errors)" if has_errors else "",
    )

    return FileContext(
        path=path,
        source=source,
        tree=tree,
        has_parse_errors=has_errors,
    )
