"""
groundhog - local, immutable snapshots with minimal-diff rollback.

This package provides:
- Content-addressed, deduplicated blob storage per scope
- Merkle-style manifests of a scope's live state
- Minimal-diff rollback through backend drivers
- Mark-and-sweep garbage collection and integrity verification

Main entry point:
    SnapshotEngine - one method per command

Example usage:
    from groundhog import SnapshotEngine, JsonScopeRegistry

    engine = SnapshotEngine(JsonScopeRegistry(home / 'registry.json'), home=home)
    scope = engine.init('/path/to/project', name='project')

    engine.snapshot('project', 'before-upgrade')
    engine.rollback('project', latest=True)

    engine.delete('project', 'before-upgrade')
    engine.gc('project')
"""

from .engine import SnapshotEngine, RollbackResult
from .errors import (
    GroundhogError,
    NotFoundError,
    DuplicateNameError,
    ScopeBusyError,
    UnsupportedError,
    CorruptError,
    IoFailureError,
    PartialRollbackError,
    SnapshotLockedError,
)
from .model.blob import Blob
from .model.scope import Scope
from .model.snapshot import SnapshotRecord
from .model.tree import Manifest, TreeEntry
from .registry import ScopeRegistry, InMemoryScopeRegistry, JsonScopeRegistry
from .tree_builder import Diff, TreeBuilder, diff

__version__ = '0.1.0'

__all__ = [
    # Main engine
    'SnapshotEngine',
    'RollbackResult',

    # Errors
    'GroundhogError',
    'NotFoundError',
    'DuplicateNameError',
    'ScopeBusyError',
    'UnsupportedError',
    'CorruptError',
    'IoFailureError',
    'PartialRollbackError',
    'SnapshotLockedError',

    # Models
    'Blob',
    'Scope',
    'SnapshotRecord',
    'Manifest',
    'TreeEntry',

    # Registry
    'ScopeRegistry',
    'InMemoryScopeRegistry',
    'JsonScopeRegistry',

    # Tree building
    'Diff',
    'TreeBuilder',
    'diff',
]
