"""
Garbage collection for unreachable blobs.

Implements mark-and-sweep over every retained snapshot's manifest.
"""

import logging
from collections import deque
from typing import Iterable, Set

from ..errors import CorruptError, NotFoundError
from ..integrity.canonical import decode_canonical
from ..model.tree import DIR
from .content_store import ContentStore

logger = logging.getLogger(__name__)


def tree_references(data: bytes, address: str) -> list[tuple[str, str]]:
    """
    Extract (kind, address) pairs referenced by a stored tree object.

    Raises CorruptError if the object is not a tree.
    """
    try:
        obj = decode_canonical(data)
    except ValueError as e:
        raise CorruptError(address, f"tree object is not valid JSON: {e}")

    if not isinstance(obj, dict) or obj.get('type') != 'tree':
        raise CorruptError(address, "object is not a tree")

    refs = []
    for entry in obj.get('entries', []):
        try:
            refs.append((entry['kind'], entry['hash']))
        except (KeyError, TypeError):
            raise CorruptError(address, f"malformed tree entry: {entry!r}")
    return refs


class GarbageCollector:
    """
    Garbage collector for a scope's content store.

    Uses mark-and-sweep:
    1. Mark: trace from every retained manifest root to find live objects
    2. Sweep: delete everything else

    Reachability is recomputed from scratch on every run; there are no
    reference counts to drift out of sync with renames or deletes.
    A missing tree object aborts the run before anything is swept.
    """

    def __init__(self, store: ContentStore):
        self.store = store

    def mark(self, roots: Iterable[str]) -> Set[str]:
        """
        Mark all objects reachable from manifest roots.

        Uses breadth-first traversal over tree objects. A file may hold
        the exact bytes of a tree object and so share its address; every
        directory reference is still expanded, whatever else reached it.

        Returns set of reachable addresses.
        """
        reachable: Set[str] = set()
        expanded: Set[str] = set()
        queue = deque((DIR, root) for root in roots)

        while queue:
            kind, address = queue.popleft()
            reachable.add(address)

            if kind != DIR or address in expanded:
                continue
            expanded.add(address)

            try:
                data = self.store.get(address, verify=False)
            except NotFoundError:
                raise CorruptError(address, "tree object referenced by a snapshot is missing")

            for ref_kind, ref in tree_references(data, address):
                if ref not in reachable or (ref_kind == DIR and ref not in expanded):
                    queue.append((ref_kind, ref))

        return reachable

    def collect(self, roots: Iterable[str], dry_run: bool = False) -> dict:
        """
        Run garbage collection.

        Args:
            roots: manifest root hashes of every retained snapshot
            dry_run: if True, only report what would be deleted

        Returns dict with:
            - reachable: set of reachable addresses
            - unreachable: set of unreachable addresses
            - deleted: list of deleted addresses (empty if dry_run)
            - reclaimed_bytes: bytes freed
        """
        reachable = self.mark(roots)
        swept = self.store.gc(reachable, dry_run=dry_run)

        logger.info(
            "gc: %d reachable, %d unreachable, %d deleted%s",
            len(reachable),
            len(swept['unreachable']),
            len(swept['deleted']),
            " (dry run)" if dry_run else "",
        )

        return {
            'reachable': reachable,
            'unreachable': swept['unreachable'],
            'deleted': swept['deleted'],
            'reclaimed_bytes': swept['reclaimed_bytes'],
        }
