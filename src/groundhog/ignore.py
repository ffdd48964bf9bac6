from pathlib import Path, PurePosixPath
from typing import Iterable, Set

from .storage.layout import IGNORE_FILENAME, STORE_DIRNAME

# The store and its ignore file are never part of a capture
ALWAYS_IGNORE = {STORE_DIRNAME, IGNORE_FILENAME}


def load_groundhogignore(root: Path) -> Set[str]:
    """Load additional ignore names from .groundhogignore."""
    ignore_file = Path(root) / IGNORE_FILENAME
    if not ignore_file.exists():
        return set()
    patterns = set()
    for line in ignore_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.add(line.strip("/"))
    return patterns


def get_ignore_set(root: Path, extra: Iterable[str] = ()) -> Set[str]:
    """Get the full ignore set for a scope root."""
    return ALWAYS_IGNORE | load_groundhogignore(root) | set(extra)


def should_ignore(path: str, ignore_set: Set[str]) -> bool:
    """Check if a relative path matches any ignore entry.

    An entry matches a single path component anywhere, or, when it
    contains a slash, a leading run of components.
    """
    parts = PurePosixPath(path).parts
    for part in parts:
        if part in ignore_set:
            return True
    for i in range(2, len(parts) + 1):
        if "/".join(parts[:i]) in ignore_set:
            return True
    return False
