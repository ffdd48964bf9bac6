"""
Tree Builder.

Turns a driver's live state into a content-addressed Manifest, rebuilds
stored manifests, and computes minimal diffs between two manifests.
"""

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

from .drivers.base import BackendDriver
from .errors import CorruptError, NotFoundError
from .integrity.canonical import decode_canonical
from .model.blob import Blob
from .model.tree import DIR, FILE, Manifest, TreeEntry, encode_tree, join_path
from .storage.content_store import ContentStore

logger = logging.getLogger(__name__)


def _parent_and_name(path: str) -> Tuple[str, str]:
    parent, _, name = path.rpartition('/')
    return parent, name


def _depth(path: str) -> int:
    return path.count('/')


class TreeBuilder:
    """
    Captures a backend's current state as a Manifest.

    With a store, every leaf blob and directory tree object is persisted
    while capturing; without one, entries are only hashed.
    """

    def __init__(
        self,
        driver: BackendDriver,
        store: Optional[ContentStore] = None,
        workers: int = 1,
    ):
        self.driver = driver
        self.store = store
        self.workers = max(1, workers)

    def _capture_leaf(self, item: Tuple[str, str]) -> Tuple[str, str, int, Optional[int]]:
        path, kind = item
        blob = Blob(self.driver.capture_entry(path))
        mode = self.driver.capture_mode(path) if kind == FILE else None
        if self.store is not None:
            address = self.store.put(blob.data)
        else:
            address = blob.address
        return path, address, blob.size(), mode

    def capture(self) -> Manifest:
        """
        Walk the backend and build its Manifest.

        Leaves may be read and hashed in parallel; directories are then
        aggregated bottom-up with children sorted by name, so the root
        hash depends only on content and file modes.
        """
        entries = list(self.driver.enumerate())
        kinds = dict(entries)
        leaves = [(path, kind) for path, kind in entries if kind != DIR]
        dirs = [path for path, kind in entries if kind == DIR]

        if self.workers > 1 and len(leaves) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                captured = list(pool.map(self._capture_leaf, leaves))
        else:
            captured = [self._capture_leaf(item) for item in leaves]

        children: Dict[str, List[TreeEntry]] = defaultdict(list)
        for path, address, size, mode in captured:
            parent, name = _parent_and_name(path)
            children[parent].append(TreeEntry.leaf(name, kinds[path], address, size, mode))

        for path in sorted(dirs, key=_depth, reverse=True):
            parent, name = _parent_and_name(path)
            children[parent].append(self._directory(name, children.pop(path, [])))

        manifest = Manifest(self._directory('', children.pop('', [])))
        logger.debug(
            "captured %d entries, root %s", len(entries), manifest.root_hash[:12]
        )
        return manifest

    def _directory(self, name: str, kids: List[TreeEntry]) -> TreeEntry:
        entry = TreeEntry.directory(name, kids)
        if self.store is not None:
            self.store.put(encode_tree(entry.children))
        return entry


def load_manifest(store: ContentStore, root_hash: str) -> Manifest:
    """
    Rebuild a stored Manifest from its tree objects.

    Raises CorruptError if a tree object is missing or does not hash
    to its address.
    """
    return Manifest(_load_tree(store, '', root_hash))


def _load_tree(store: ContentStore, name: str, address: str) -> TreeEntry:
    try:
        data = store.get(address, verify=False)
    except NotFoundError:
        raise CorruptError(address, "tree object referenced by a manifest is missing")

    try:
        obj = decode_canonical(data)
        raw_entries = obj['entries']
    except (ValueError, KeyError, TypeError) as e:
        raise CorruptError(address, f"unreadable tree object: {e}")

    try:
        kids = []
        for raw in raw_entries:
            if raw.get('kind') == DIR:
                kids.append(_load_tree(store, raw['name'], raw['hash']))
            else:
                kids.append(
                    TreeEntry.leaf(
                        raw['name'], raw['kind'], raw['hash'],
                        raw.get('size', 0), raw.get('mode'),
                    )
                )
        entry = TreeEntry.directory(name, kids)
    except (ValueError, KeyError, TypeError) as e:
        raise CorruptError(address, f"malformed tree entry: {e}")

    if entry.hash != address:
        raise CorruptError(address, f"tree object hashes to {entry.hash}")
    return entry


class Diff:
    """
    Changes that turn one manifest into another.

    Paths are listed parents first.
    """

    def __init__(self):
        self.added: List[str] = []
        self.changed: List[str] = []
        self.removed: List[str] = []

    def is_empty(self) -> bool:
        return not (self.added or self.changed or self.removed)

    def __len__(self) -> int:
        return len(self.added) + len(self.changed) + len(self.removed)

    def to_dict(self) -> dict:
        return {
            'added': list(self.added),
            'changed': list(self.changed),
            'removed': list(self.removed),
        }

    def __repr__(self) -> str:
        return (
            f"Diff(added={len(self.added)}, changed={len(self.changed)}, "
            f"removed={len(self.removed)})"
        )


def diff(old: Manifest, new: Manifest) -> Diff:
    """
    Compare two manifests structurally.

    Subtrees with equal hashes are skipped without descending.

    - added: present in new, absent in old
    - changed: present in both with different content, mode or kind
    - removed: present in old, absent in new
    """
    result = Diff()
    _diff_dir(old.root, new.root, '', result)
    return result


def _collect(path: str, entry: TreeEntry, out: List[str]) -> None:
    out.append(path)
    if entry.is_dir:
        for child in entry.children:
            _collect(join_path(path, child.name), child, out)


def _diff_dir(old: TreeEntry, new: TreeEntry, prefix: str, out: Diff) -> None:
    if old.hash == new.hash:
        return

    old_children = old.child_map()
    new_children = new.child_map()

    for name in sorted(set(old_children) | set(new_children)):
        path = join_path(prefix, name)
        before = old_children.get(name)
        after = new_children.get(name)

        if after is None:
            _collect(path, before, out.removed)
        elif before is None:
            _collect(path, after, out.added)
        elif before.kind != after.kind:
            out.changed.append(path)
            for child in before.children or ():
                _collect(join_path(path, child.name), child, out.removed)
            for child in after.children or ():
                _collect(join_path(path, child.name), child, out.added)
        elif before.is_dir:
            if before.hash != after.hash:
                _diff_dir(before, after, path, out)
        elif before.hash != after.hash or before.mode != after.mode:
            out.changed.append(path)
