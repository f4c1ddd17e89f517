"""
File system traversal: walk a project and collect JavaScript/TypeScript files.

Dependency, build output and VCS directories are skipped by name so that
vendored and generated code does not drown the findings of the project
itself. Ignore globs from the configuration are applied later by the engine;
this module only decides which directories are worth walking.

Typical usage:
    from pathlib import Path
    from webaudit.traversal import find_source_files

    files = find_source_files(Path("./my-app"))

    # only TypeScript, custom ignore set
    files = find_source_files(
        Path("./my-app"),
        extensions=(".ts", ".tsx"),
        ignore_dirs={"node_modules", "generated"},
    )
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional, Set

from webaudit.errors import ScanRootError
from webaudit.rules.base import JS_TS_EXTENSIONS

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_DIRS: Set[str] = {
    # Dependencies
    "node_modules",
    "bower_components",
    "jspm_packages",
    "vendor",

    # Build output
    "dist",
    "build",
    "out",
    ".next",
    ".nuxt",
    ".output",
    ".svelte-kit",
    ".turbo",
    ".vercel",

    # Coverage and caches
    "coverage",
    ".nyc_output",
    ".cache",
    ".parcel-cache",

    # Version control and editors
    ".git",
    ".svn",
    ".hg",
    ".vscode",
    ".idea",
}


def is_source_file(path: Path, extensions: Iterable[str] = JS_TS_EXTENSIONS) -> bool:
    """
    Check if a file has one of the scanned extensions (case-insensitive).

    Examples:
        >>> is_source_file(Path("server.js"))
        True
        >>> is_source_file(Path("App.TSX"))
        True
        >>> is_source_file(Path("types.d.json"))
        False
    """
    return path.suffix.lower() in {e.lower() for e in extensions}


def should_ignore_directory(dir_path: Path, ignore_dirs: Set[str]) -> bool:
    """Check a directory by name (not full path) against the ignore set."""
    return dir_path.name in ignore_dirs


def find_source_files(
    root: Path,
    extensions: Iterable[str] = JS_TS_EXTENSIONS,
    ignore_dirs: Optional[Set[str]] = None,
    follow_symlinks: bool = False,
    filter_fn: Optional[Callable[[Path], bool]] = None,
) -> list[Path]:
    """
    Recursively find all JS/TS source files under root.

    Args:
        root: Directory to walk, or a single file (returned as-is when its
              extension is scanned).
        extensions: Suffixes to collect, e.g. (".js", ".ts").
        ignore_dirs: Directory names to skip. If None, uses DEFAULT_IGNORE_DIRS.
        follow_symlinks: If True, follow symbolic links during traversal.
                         If False (default), symlinks are skipped.
        filter_fn: Optional extra filter; only files for which it returns
                   True are kept.

    Returns:
        Resolved paths of matching files, sorted for deterministic output.

    Raises:
        ScanRootError: root does not exist or is neither a file nor a directory.

    Notes:
        - Permission errors on subdirectories are logged and skipped.
    """
    if ignore_dirs is None:
        ignore_dirs = DEFAULT_IGNORE_DIRS
    extensions = tuple(extensions)

    root = root.resolve()

    if not root.exists():
        logger.error("Scan target does not exist: %s", root)
        raise ScanRootError(f"Scan target does not exist: {root}", {"path": str(root)})

    if root.is_file():
        if is_source_file(root, extensions):
            return [root]
        logger.warning("Target file %s does not have a scanned extension", root)
        return []

    if not root.is_dir():
        logger.error("Scan target is not a file or directory: %s", root)
        raise ScanRootError(f"Scan target is not a file or directory: {root}", {"path": str(root)})

    logger.info("Starting traversal from: %s", root)
    logger.debug(
        "Traversal config: extensions=%s, follow_symlinks=%s, ignore_dirs=%s",
        extensions,
        follow_symlinks,
        sorted(ignore_dirs),
    )

    collected_files: list[Path] = []

    def _walk_directory(current_dir: Path) -> None:
        try:
            for entry in current_dir.iterdir():
                if entry.is_symlink() and not follow_symlinks:
                    logger.debug("Skipping symlink: %s", entry)
                    continue

                if entry.is_dir():
                    if should_ignore_directory(entry, ignore_dirs):
                        logger.debug("Ignoring directory: %s", entry)
                        continue
                    _walk_directory(entry)

                elif entry.is_file() and is_source_file(entry, extensions):
                    if filter_fn is not None and not filter_fn(entry):
                        logger.debug("Filtered out by custom filter: %s", entry)
                        continue
                    collected_files.append(entry)

        except PermissionError as e:
            logger.warning("Permission denied accessing directory %s: %s", current_dir, e)
        except OSError as e:
            logger.warning("Error accessing directory %s: %s", current_dir, e)

    _walk_directory(root)
    collected_files.sort()

    logger.info(
        "Traversal complete: found %d source file(s) in %s",
        len(collected_files),
        root,
    )
    return collected_files
