# Tree-sitter setup and AST parsing: parse JavaScript/TypeScript source into AST trees.

import logging
from pathlib import Path
from typing import Optional

import tree_sitter
import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language

logger = logging.getLogger(__name__)

# Grammars: wrap the language capsules for use with tree_sitter.Parser
_JAVASCRIPT = Language(tree_sitter_javascript.language())
_TYPESCRIPT = Language(tree_sitter_typescript.language_typescript())
_TSX = Language(tree_sitter_typescript.language_tsx())

# File suffix -> grammar. JSX is part of the JavaScript grammar.
_LANGUAGES_BY_SUFFIX: dict[str, Language] = {
    ".js": _JAVASCRIPT,
    ".jsx": _JAVASCRIPT,
    ".mjs": _JAVASCRIPT,
    ".cjs": _JAVASCRIPT,
    ".ts": _TYPESCRIPT,
    ".mts": _TYPESCRIPT,
    ".cts": _TYPESCRIPT,
    ".tsx": _TSX,
}

SUPPORTED_SUFFIXES = frozenset(_LANGUAGES_BY_SUFFIX)


def get_language(path: Path | str) -> Optional[Language]:
    """Return the Tree-sitter Language for a file path, or None if unsupported."""
    return _LANGUAGES_BY_SUFFIX.get(Path(path).suffix.lower())


def create_parser(path: Path | str | None = None) -> tree_sitter.Parser:
    """
    Create and return a Tree-sitter Parser for the grammar matching path.

    Without a path (or for an unknown suffix) the JavaScript grammar is used.
    Parsers are not thread-safe; each worker creates its own.
    """
    language = get_language(path) if path is not None else None
    return tree_sitter.Parser(language or _JAVASCRIPT)


def parse_bytes(
    source: bytes,
    parser: Optional[tree_sitter.Parser] = None,
) -> tree_sitter.Tree:
    """
    Parse JS/TS source bytes into an AST.

    Args:
        source: UTF-8 encoded source code.
        parser: Optional parser instance; if None, a JavaScript parser is created.

    Returns:
        The parse tree. Check tree.root_node for errors (e.g. ERROR nodes).
    """
    if parser is None:
        parser = create_parser()
    tree = parser.parse(source)
    if tree.root_node.has_error:
        logger.warning(
            "Parse completed with errors: root=%s",
            tree.root_node.type,
        )
    else:
        logger.debug(
            "Parse succeeded: root=%s",
            tree.root_node.type,
        )
    return tree
