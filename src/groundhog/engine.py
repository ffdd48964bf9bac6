"""
Snapshot Engine.

Main entry point coordinating registry, drivers, tree builder and store.
"""

import hashlib
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .config import groundhog_home, load_config
from .drivers.selector import create_driver, select_driver_kind
from .errors import (
    CorruptError,
    DuplicateNameError,
    GroundhogError,
    IoFailureError,
    NotFoundError,
    PartialRollbackError,
    ScopeBusyError,
    SnapshotLockedError,
)
from .integrity.hashing import hash_password, verify_password
from .integrity.verification import verify_manifest_recursive
from .model.scope import FILESYSTEM, Scope
from .model.snapshot import SnapshotRecord
from .model.tree import Manifest
from .registry import ScopeRegistry
from .storage.content_store import ContentStore
from .storage.gc import GarbageCollector
from .storage.layout import IGNORE_FILENAME, StorageLayout, store_root_for
from .storage.lock import ScopeLock
from .storage.records import RecordStore
from .tree_builder import Diff, TreeBuilder, diff, load_manifest

logger = logging.getLogger(__name__)

IDLE = 'idle'
CAPTURING = 'capturing'
ROLLING_BACK = 'rolling_back'
DELETING = 'deleting'
RENAMING = 'renaming'
COLLECTING = 'collecting'
DROPPING = 'dropping'


def generate_scope_name(target: str) -> str:
    """Default scope name derived from its target."""
    digest = hashlib.sha256(target.encode('utf-8')).hexdigest()
    return f"scope-{digest[:8]}"


def _depth(path: str) -> int:
    return path.count('/')


class RollbackResult:
    """
    Outcome of a completed rollback.

    kept lists directories the snapshot does not have that were left in
    place because they still hold ignored or uncaptured entries.
    """

    def __init__(
        self,
        snapshot: SnapshotRecord,
        changes: Diff,
        applied: List[str],
        kept: Sequence[str] = (),
    ):
        self.snapshot = snapshot
        self.diff = changes
        self.applied = list(applied)
        self.kept = list(kept)

    @property
    def touched(self) -> int:
        return len(self.applied)

    def __repr__(self) -> str:
        return f"RollbackResult(snapshot={self.snapshot.name!r}, {self.diff!r})"


class _ScopeContext:
    """Resolved pieces of one scope's local store."""

    def __init__(self, scope: Scope, layout: StorageLayout, config: dict):
        self.scope = scope
        self.layout = layout
        self.config = config
        self.store = ContentStore(layout, verify=config['verify_blobs'])
        self.records = RecordStore(layout)


class SnapshotEngine:
    """
    Main engine for snapshot and rollback operations.

    One method per command; arguments arrive parsed and validated,
    results are returned as typed values and failures raised as
    GroundhogError subclasses. Nothing is printed.

    Each mutating operation moves its scope out of the idle state and
    holds the scope lock until it finishes.
    """

    def __init__(
        self,
        registry: ScopeRegistry,
        home: Optional[Path] = None,
        config: Optional[dict] = None,
    ):
        """
        Args:
            registry: scope registry to resolve and update scopes in
            home: groundhog home for global config and non-filesystem stores
            config: settings that override every config file
        """
        self.registry = registry
        self.home = Path(home) if home is not None else groundhog_home()
        self.config_overrides = dict(config or {})
        self._states: Dict[str, str] = {}

    # ========== Scope resolution ==========

    def _layout(self, scope: Scope) -> StorageLayout:
        return StorageLayout(store_root_for(scope, self.home))

    def _open(self, scope_name: str) -> _ScopeContext:
        scope = self.registry.resolve(scope_name)
        layout = self._layout(scope)
        if not layout.exists():
            raise NotFoundError("store", str(layout.store_root))
        config = load_config(layout.store_root, self.home, self.config_overrides)
        return _ScopeContext(scope, layout, config)

    def state(self, scope_name: str) -> str:
        """Current in-process state of a scope."""
        return self._states.get(scope_name, IDLE)

    @contextmanager
    def _operation(self, ctx: _ScopeContext, state: str):
        name = ctx.scope.name
        if self.state(name) != IDLE:
            raise ScopeBusyError(name, {'operation': self.state(name)})

        with ScopeLock(ctx.layout.lock_path, name, state):
            self._states[name] = state
            try:
                yield
            finally:
                self._states.pop(name, None)

    # ========== Commands ==========

    def init(
        self,
        target: str,
        name: Optional[str] = None,
        driver_kind: Optional[str] = None,
    ) -> Scope:
        """
        Register a target as a scope and create its local store.

        A target that is registered but lost its local store is recovered.
        Passing a different name for an existing target renames the scope.

        Raises DuplicateNameError if another scope already uses the name.
        """
        kind = driver_kind or select_driver_kind(target)
        if kind == FILESYSTEM:
            path = Path(target).absolute()
            if not path.is_dir():
                raise NotFoundError("target directory", str(path))
            target = str(path)

        existing = self.registry.find_by_target(target)
        if existing is not None:
            layout = self._layout(existing)
            if not layout.exists():
                layout.initialize()
                logger.info("recovered missing store for scope %s", existing.name)
            if name and name != existing.name:
                return self.rename(existing.name, name)
            return existing

        scope_name = name or generate_scope_name(target)
        if any(s.name == scope_name for s in self.registry.list()):
            raise DuplicateNameError("scope", scope_name)

        scope = Scope(scope_name, target, kind)
        self._layout(scope).initialize()
        self.registry.register(scope)

        logger.info("initialized scope %s at %s", scope_name, target)
        return scope

    def snapshot(
        self,
        scope_name: str,
        name: str,
        locked: bool = False,
        password: Optional[str] = None,
    ) -> SnapshotRecord:
        """
        Capture the scope's current state as a named snapshot.

        Every blob is durably stored before the record is written, so an
        interrupted capture leaves at most unreferenced blobs behind.

        Raises DuplicateNameError if the name exists in this scope.
        """
        ctx = self._open(scope_name)

        with self._operation(ctx, CAPTURING):
            if ctx.records.exists(name):
                raise DuplicateNameError("snapshot", name)

            driver = create_driver(ctx.scope, ctx.config)
            builder = TreeBuilder(driver, ctx.store, ctx.config['workers'])
            manifest = builder.capture()

            record = SnapshotRecord(
                name=name,
                scope_name=ctx.scope.name,
                manifest=manifest.root_hash,
                locked=locked or bool(password),
                size=manifest.total_size,
                blob_count=len(manifest.blob_addresses()),
                file_count=manifest.file_count,
                driver_kind=ctx.scope.driver_kind,
                password_hash=hash_password(password) if password else None,
            )
            ctx.records.put(record)

        logger.info(
            "snapshot %s of scope %s: %d files, root %s",
            name, ctx.scope.name, record.file_count, record.manifest[:12],
        )
        return record

    def rollback(
        self,
        scope_name: str,
        name: Optional[str] = None,
        latest: bool = False,
    ) -> RollbackResult:
        """
        Restore the scope to a snapshot by applying only the difference.

        Raises NotFoundError for an unknown snapshot (or no snapshots with
        latest), CorruptError if the snapshot's objects are not all in the
        store, and PartialRollbackError if some entries could not be
        applied. Re-running after a partial rollback is safe.
        """
        if name is None and not latest:
            raise ValueError("snapshot name required unless latest is set")

        ctx = self._open(scope_name)

        with self._operation(ctx, ROLLING_BACK):
            record = ctx.records.latest() if latest else ctx.records.get(name)

            driver = create_driver(ctx.scope, ctx.config)
            target = load_manifest(ctx.store, record.manifest)
            current = TreeBuilder(driver, workers=ctx.config['workers']).capture()
            changes = diff(current, target)

            blobs = self._fetch_blobs(ctx.store, target, changes, ctx.config['workers'])
            applied, kept = self._apply(driver, blobs, target, changes)

        logger.info(
            "rolled back scope %s to %s: %d added, %d changed, %d removed",
            ctx.scope.name, record.name,
            len(changes.added), len(changes.changed), len(changes.removed),
        )
        return RollbackResult(record, changes, applied, kept)

    def _fetch_blobs(
        self,
        store: ContentStore,
        target: Manifest,
        changes: Diff,
        workers: int,
    ) -> Dict[str, bytes]:
        """
        Read and verify every blob the rollback needs.

        Runs before the scope is touched, so a missing or tampered blob
        aborts the rollback with CorruptError and nothing applied.
        """
        wanted = {}
        for path in changes.added + changes.changed:
            entry = target.get(path)
            if not entry.is_dir:
                wanted.setdefault(entry.hash, path)

        def fetch(address: str) -> bytes:
            try:
                return store.get(address, verify=True)
            except NotFoundError:
                raise CorruptError(
                    address, f"blob for '{wanted[address]}' is missing from the store"
                )

        addresses = sorted(wanted)
        if workers > 1 and len(addresses) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                data = list(pool.map(fetch, addresses))
        else:
            data = [fetch(address) for address in addresses]
        return dict(zip(addresses, data))

    def _apply(
        self,
        driver,
        blobs: Dict[str, bytes],
        target: Manifest,
        changes: Diff,
    ) -> Tuple[List[str], List[str]]:
        """
        Apply a diff through the driver.

        Removals run deepest first, restores parents first. Every entry
        is attempted; failures are collected into one PartialRollbackError.
        Returns (applied, kept) where kept holds directories the driver
        left in place because they are not empty.
        """
        removals = sorted(changes.removed, key=_depth, reverse=True)
        restores = sorted(changes.changed + changes.added, key=lambda p: (_depth(p), p))

        applied: List[str] = []
        kept: List[str] = []
        errors: Dict[str, str] = {}

        for path in removals:
            try:
                if driver.remove_entry(path) is False:
                    kept.append(path)
                else:
                    applied.append(path)
            except GroundhogError as e:
                errors[path] = str(e)

        for path in restores:
            entry = target.get(path)
            try:
                data = b'' if entry.is_dir else blobs[entry.hash]
                driver.restore_entry(path, entry.kind, data, entry.mode)
                applied.append(path)
            except GroundhogError as e:
                errors[path] = str(e)

        if errors:
            done = set(applied) | set(kept)
            unapplied = [p for p in removals + restores if p not in done]
            logger.error("rollback left %d entries unapplied", len(unapplied))
            raise PartialRollbackError(applied, unapplied, errors)

        return applied, kept

    def delete(
        self,
        scope_name: str,
        name: str,
        password: Optional[str] = None,
    ) -> SnapshotRecord:
        """
        Delete a snapshot record.

        Blobs are not touched; run gc to reclaim unreferenced ones.
        A snapshot created with a password needs the same password.
        """
        ctx = self._open(scope_name)

        with self._operation(ctx, DELETING):
            record = ctx.records.get(name)
            if record.password_hash:
                if password is None or not verify_password(password, record.password_hash):
                    raise SnapshotLockedError(name)
            ctx.records.delete(name)

        logger.info("deleted snapshot %s of scope %s", name, ctx.scope.name)
        return record

    def list(self, scope_name: str) -> List[SnapshotRecord]:
        """Snapshots of a scope, oldest first."""
        return self._open(scope_name).records.list()

    def rename(self, scope_name: str, new_name: str) -> Scope:
        """
        Rename a scope and every snapshot record that belongs to it.

        The local store stays where it is.

        Raises DuplicateNameError if another scope uses new_name.
        """
        ctx = self._open(scope_name)
        if new_name == ctx.scope.name:
            return ctx.scope
        if any(s.name == new_name for s in self.registry.list()):
            raise DuplicateNameError("scope", new_name)

        with self._operation(ctx, RENAMING):
            for record in ctx.records.list():
                ctx.records.put(record.with_names(scope_name=new_name))
            renamed = self.registry.rename(ctx.scope.name, new_name)

        logger.info("renamed scope %s to %s", scope_name, new_name)
        return renamed

    def gc(self, scope_name: str, dry_run: bool = False) -> dict:
        """
        Reclaim blobs no retained snapshot can reach.

        Holds the scope lock, so it never overlaps a capture or rollback.
        """
        ctx = self._open(scope_name)

        with self._operation(ctx, COLLECTING):
            roots = {record.manifest for record in ctx.records.list()}
            return GarbageCollector(ctx.store).collect(roots, dry_run=dry_run)

    def verify(self, scope_name: str, name: str) -> dict:
        """
        Verify a snapshot and every object it references.

        Returns dict with:
            - valid: bool
            - errors: list of error messages
            - checked: number of objects examined
        """
        ctx = self._open(scope_name)
        record = ctx.records.get(name)
        is_valid, errors, checked = verify_manifest_recursive(ctx.store, record.manifest)
        return {
            'snapshot': name,
            'valid': is_valid,
            'errors': errors,
            'checked': checked,
        }

    def drop(self, scope_name: str) -> Scope:
        """
        Delete a scope's local store with all its snapshots and unregister it.

        The scope's live data is left alone.
        """
        ctx = self._open(scope_name)

        with self._operation(ctx, DROPPING):
            try:
                for path in ctx.layout.store_root.iterdir():
                    if path != ctx.layout.lock_path:
                        if path.is_dir():
                            shutil.rmtree(path)
                        else:
                            path.unlink()
            except OSError as e:
                raise IoFailureError("drop", str(ctx.layout.store_root), e)

            if ctx.scope.driver_kind == FILESYSTEM:
                Path(ctx.scope.target, IGNORE_FILENAME).unlink(missing_ok=True)

        try:
            ctx.layout.store_root.rmdir()
        except OSError as e:
            raise IoFailureError("drop", str(ctx.layout.store_root), e)

        self.registry.remove(ctx.scope.name)
        logger.info("dropped scope %s", ctx.scope.name)
        return ctx.scope

    def scopes(self) -> List[Scope]:
        """All registered scopes."""
        return self.registry.list()

    def get_statistics(self, scope_name: str) -> dict:
        """
        Get store statistics for a scope.

        Returns dict with object count, stored bytes and snapshot count.
        """
        ctx = self._open(scope_name)
        stats = ctx.store.stats()
        stats['snapshots'] = len(ctx.records.list())
        return stats

    def current_manifest(self, scope_name: str) -> Manifest:
        """Manifest of the scope's live state, without storing anything."""
        ctx = self._open(scope_name)
        driver = create_driver(ctx.scope, ctx.config)
        return TreeBuilder(driver, workers=ctx.config['workers']).capture()

    def __repr__(self) -> str:
        return f"SnapshotEngine(home={self.home}, scopes={len(self.registry.list())})"
