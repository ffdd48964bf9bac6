"""
Tree entries and manifests.

A manifest is the root directory entry of one capture. Directory hashes
are computed from their sorted children, so two manifests can be compared
by root hash before any byte-level comparison.
"""

from typing import Dict, Iterator, List, Optional, Set, Tuple

from ..integrity.canonical import canonical_json
from ..integrity.hashing import compute_hash

FILE = 'file'
DIR = 'dir'
SYMLINK = 'symlink'

ENTRY_KINDS = (FILE, DIR, SYMLINK)


def tree_object(children: List['TreeEntry']) -> dict:
    """
    Build the storable object for a directory.
    
    Children must already be sorted by name.
    """
    entries = []
    for child in children:
        entry = {
            'name': child.name,
            'kind': child.kind,
            'hash': child.hash,
            'size': child.size,
        }
        if child.mode is not None:
            entry['mode'] = child.mode
        entries.append(entry)
    return {'type': 'tree', 'entries': entries}


def encode_tree(children: List['TreeEntry']) -> bytes:
    """Canonical bytes of a directory object. Its hash is the directory hash."""
    return canonical_json(tree_object(children))


class TreeEntry:
    """
    One item of a captured scope.
    
    Files and symlinks reference a blob address; directories hold an
    ordered list of child entries and hash over them. Files may carry
    their permission bits in mode.
    """
    
    def __init__(
        self,
        name: str,
        kind: str,
        hash: str,
        size: int = 0,
        children: Optional[List['TreeEntry']] = None,
        mode: Optional[int] = None,
    ):
        if kind not in ENTRY_KINDS:
            raise ValueError(f"Invalid entry kind: {kind}")
        if name in ('.', '..') or '/' in name or '\0' in name:
            raise ValueError(f"Invalid entry name: {name!r}")
        self.name = name
        self.kind = kind
        self.hash = hash
        self.size = size
        self.children = list(children) if children is not None else None
        self.mode = mode
    
    @classmethod
    def leaf(
        cls,
        name: str,
        kind: str,
        address: str,
        size: int,
        mode: Optional[int] = None,
    ) -> 'TreeEntry':
        """Create a file or symlink entry."""
        if kind == DIR:
            raise ValueError("Leaf entries cannot be directories")
        return cls(name, kind, address, size, mode=mode)
    
    @classmethod
    def directory(cls, name: str, children: List['TreeEntry']) -> 'TreeEntry':
        """
        Create a directory entry, sorting children and computing its hash.
        
        Raises ValueError if two children share a name.
        """
        ordered = sorted(children, key=lambda c: c.name)
        for prev, cur in zip(ordered, ordered[1:]):
            if prev.name == cur.name:
                raise ValueError(f"Duplicate entry name in directory '{name}': {cur.name}")
        size = sum(child.size for child in ordered)
        return cls(name, DIR, compute_hash(encode_tree(ordered)), size, ordered)
    
    @property
    def is_dir(self) -> bool:
        return self.kind == DIR
    
    def child(self, name: str) -> Optional['TreeEntry']:
        """Find a direct child by name."""
        for entry in self.children or ():
            if entry.name == name:
                return entry
        return None
    
    def child_map(self) -> Dict[str, 'TreeEntry']:
        return {entry.name: entry for entry in self.children or ()}
    
    def to_dict(self) -> dict:
        obj = {
            'name': self.name,
            'kind': self.kind,
            'hash': self.hash,
            'size': self.size,
        }
        if self.mode is not None:
            obj['mode'] = self.mode
        if self.is_dir:
            obj['children'] = [child.to_dict() for child in self.children]
        return obj
    
    @classmethod
    def from_dict(cls, data: dict) -> 'TreeEntry':
        """
        Reconstruct an entry from its dictionary form.
        
        Raises ValueError if data is invalid.
        """
        for field in ('name', 'kind', 'hash'):
            if field not in data:
                raise ValueError(f"Tree entry missing {field} field")
        children = None
        if data['kind'] == DIR:
            children = [cls.from_dict(child) for child in data.get('children', [])]
        return cls(
            data['name'], data['kind'], data['hash'], data.get('size', 0),
            children, data.get('mode'),
        )
    
    def __eq__(self, other) -> bool:
        return (
            isinstance(other, TreeEntry)
            and self.name == other.name
            and self.kind == other.kind
            and self.hash == other.hash
            and self.mode == other.mode
        )
    
    def __hash__(self) -> int:
        return hash((self.name, self.kind, self.hash))
    
    def __repr__(self) -> str:
        return f"TreeEntry(name={self.name!r}, kind={self.kind}, hash={self.hash[:8]}...)"


def join_path(parent: str, name: str) -> str:
    return f"{parent}/{name}" if parent else name


class Manifest:
    """
    Root of one capture.
    
    The manifest's identity is its root hash.
    """
    
    def __init__(self, root: TreeEntry):
        if not root.is_dir:
            raise ValueError("Manifest root must be a directory")
        self.root = root
    
    @property
    def root_hash(self) -> str:
        return self.root.hash
    
    def walk(self) -> Iterator[Tuple[str, TreeEntry]]:
        """Yield (relative_path, entry) for every entry, parents first."""
        def _walk(prefix: str, node: TreeEntry):
            for child in node.children:
                path = join_path(prefix, child.name)
                yield path, child
                if child.is_dir:
                    yield from _walk(path, child)

        return _walk('', self.root)
    
    def flatten(self) -> Dict[str, TreeEntry]:
        """Map every relative path to its entry."""
        return dict(self.walk())
    
    def get(self, path: str) -> Optional[TreeEntry]:
        """Look up an entry by relative path."""
        node = self.root
        for part in path.split('/'):
            if not node.is_dir:
                return None
            node = node.child(part)
            if node is None:
                return None
        return node
    
    def addresses(self) -> Set[str]:
        """All content addresses reachable from this manifest, trees included."""
        found = {self.root.hash}
        for _, entry in self.walk():
            found.add(entry.hash)
        return found

    def blob_addresses(self) -> Set[str]:
        """Addresses of leaf blobs only."""
        return {entry.hash for _, entry in self.walk() if not entry.is_dir}
    
    @property
    def file_count(self) -> int:
        return sum(1 for _, entry in self.walk() if entry.kind == FILE)
    
    @property
    def total_size(self) -> int:
        return self.root.size
    
    def to_dict(self) -> dict:
        return self.root.to_dict()
    
    @classmethod
    def from_dict(cls, data: dict) -> 'Manifest':
        return cls(TreeEntry.from_dict(data))
    
    def __eq__(self, other) -> bool:
        return isinstance(other, Manifest) and self.root_hash == other.root_hash
    
    def __hash__(self) -> int:
        return hash(self.root_hash)
    
    def __repr__(self) -> str:
        return f"Manifest(root={self.root_hash[:8]}..., files={self.file_count})"
