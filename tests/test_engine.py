"""
Test snapshot, rollback and record management through the engine.

Verifies round-trips, minimal rollback and the record lifecycle.
"""

import os
import shutil

import pytest

from groundhog import (
    DuplicateNameError,
    InMemoryScopeRegistry,
    NotFoundError,
    SnapshotEngine,
    SnapshotLockedError,
    UnsupportedError,
)


class TestSnapshotRollback:
    """Test capture and minimal-diff rollback of a directory scope."""

    @pytest.fixture
    def engine(self, tmp_path):
        """Create an engine with one registered scope 'proj'."""
        target = tmp_path / "project"
        target.mkdir()
        engine = SnapshotEngine(InMemoryScopeRegistry(), home=tmp_path / "home")
        engine.init(str(target), name="proj")
        engine.target = target
        return engine

    def test_concrete_scenario(self, engine):
        """Modified and deleted files come back; nothing else is touched."""
        target = engine.target
        (target / "a.txt").write_text("1")
        (target / "b.txt").write_text("2")

        record = engine.snapshot("proj", "s1")

        (target / "a.txt").write_text("9")
        (target / "b.txt").unlink()

        result = engine.rollback("proj", "s1")

        assert (target / "a.txt").read_text() == "1"
        assert (target / "b.txt").read_text() == "2"
        assert result.diff.changed == ["a.txt"]
        assert result.diff.added == ["b.txt"]
        assert result.diff.removed == []
        assert sorted(result.applied) == ["a.txt", "b.txt"]
        assert engine.current_manifest("proj").root_hash == record.manifest

    def test_round_trip_immediately_after_snapshot(self, engine):
        """Rolling back right after a snapshot is a no-op with equal hashes."""
        target = engine.target
        (target / "docs").mkdir()
        (target / "docs" / "readme.md").write_text("hello")
        (target / "main.py").write_text("print('hi')")

        record = engine.snapshot("proj", "s")
        result = engine.rollback("proj", "s")

        assert result.diff.is_empty()
        assert result.applied == []
        assert engine.current_manifest("proj").root_hash == record.manifest

    def test_untouched_files_keep_identity(self, engine):
        """Rollback never rewrites files that did not change."""
        target = engine.target
        (target / "a.txt").write_text("1")
        (target / "c.txt").write_text("stable")
        engine.snapshot("proj", "s1")

        before = os.stat(target / "c.txt")
        (target / "a.txt").write_text("2")

        result = engine.rollback("proj", "s1")
        after = os.stat(target / "c.txt")

        assert result.applied == ["a.txt"]
        assert before.st_ino == after.st_ino
        assert before.st_mtime_ns == after.st_mtime_ns

    def test_rollback_removes_new_entries(self, engine):
        """Files and directories created after the snapshot are removed."""
        target = engine.target
        (target / "keep.txt").write_text("keep")
        engine.snapshot("proj", "s1")

        (target / "new").mkdir()
        (target / "new" / "nested").mkdir()
        (target / "new" / "nested" / "x.txt").write_text("x")
        (target / "extra.txt").write_text("extra")

        result = engine.rollback("proj", "s1")

        assert not (target / "new").exists()
        assert not (target / "extra.txt").exists()
        assert (target / "keep.txt").read_text() == "keep"
        assert set(result.diff.removed) == {
            "extra.txt", "new", "new/nested", "new/nested/x.txt",
        }

    def test_rollback_restores_nested_directories(self, engine):
        """A deleted directory tree is recreated with its content."""
        target = engine.target
        (target / "src" / "pkg").mkdir(parents=True)
        (target / "src" / "pkg" / "mod.py").write_text("x = 1")
        (target / "src" / "empty").mkdir()
        record = engine.snapshot("proj", "s1")

        shutil.rmtree(target / "src")

        engine.rollback("proj", "s1")

        assert (target / "src" / "pkg" / "mod.py").read_text() == "x = 1"
        assert (target / "src" / "empty").is_dir()
        assert engine.current_manifest("proj").root_hash == record.manifest

    def test_rollback_handles_kind_change(self, engine):
        """A file replaced by a directory (and vice versa) is restored."""
        target = engine.target
        (target / "thing").write_text("file")
        (target / "folder").mkdir()
        (target / "folder" / "inner.txt").write_text("inner")
        record = engine.snapshot("proj", "s1")

        (target / "thing").unlink()
        (target / "thing").mkdir()
        (target / "thing" / "child.txt").write_text("child")
        shutil.rmtree(target / "folder")
        (target / "folder").write_text("now a file")

        engine.rollback("proj", "s1")

        assert (target / "thing").read_text() == "file"
        assert (target / "folder" / "inner.txt").read_text() == "inner"
        assert engine.current_manifest("proj").root_hash == record.manifest

    @pytest.mark.skipif(os.name != "posix", reason="symlinks need posix")
    def test_rollback_restores_symlinks(self, engine):
        """Symlinks are captured as links, not followed."""
        target = engine.target
        (target / "real.txt").write_text("real")
        os.symlink("real.txt", target / "link")
        record = engine.snapshot("proj", "s1")

        (target / "link").unlink()
        (target / "link").write_text("not a link")

        engine.rollback("proj", "s1")

        assert os.path.islink(target / "link")
        assert os.readlink(target / "link") == "real.txt"
        assert engine.current_manifest("proj").root_hash == record.manifest

    def test_rollback_is_idempotent(self, engine):
        """A second rollback to the same snapshot changes nothing."""
        target = engine.target
        (target / "a.txt").write_text("1")
        engine.snapshot("proj", "s1")
        (target / "a.txt").write_text("2")

        engine.rollback("proj", "s1")
        second = engine.rollback("proj", "s1")

        assert second.applied == []
        assert (target / "a.txt").read_text() == "1"

    def test_rollback_latest(self, engine):
        """latest picks the most recently created snapshot."""
        target = engine.target
        (target / "a.txt").write_text("first")
        engine.snapshot("proj", "s1")
        (target / "a.txt").write_text("second")
        engine.snapshot("proj", "s2")
        (target / "a.txt").write_text("third")

        result = engine.rollback("proj", latest=True)

        assert result.snapshot.name == "s2"
        assert (target / "a.txt").read_text() == "second"

    def test_rollback_latest_without_snapshots(self, engine):
        """latest on a scope with no snapshots is NotFound."""
        with pytest.raises(NotFoundError):
            engine.rollback("proj", latest=True)

    def test_rollback_unknown_snapshot(self, engine):
        with pytest.raises(NotFoundError):
            engine.rollback("proj", "missing")

    def test_rollback_requires_name_or_latest(self, engine):
        with pytest.raises(ValueError):
            engine.rollback("proj")

    def test_restored_file_keeps_mode(self, engine):
        """Restoring over an existing file keeps its permission bits."""
        target = engine.target
        script = target / "run.sh"
        script.write_text("echo 1")
        os.chmod(script, 0o755)
        engine.snapshot("proj", "s1")
        script.write_text("echo 2")

        engine.rollback("proj", "s1")

        assert script.read_text() == "echo 1"
        assert os.stat(script).st_mode & 0o777 == 0o755

    def test_store_directory_is_not_captured(self, engine):
        """The .groundhog directory never appears in a manifest."""
        (engine.target / "a.txt").write_text("1")
        engine.snapshot("proj", "s1")

        paths = engine.current_manifest("proj").flatten()

        assert list(paths) == ["a.txt"]

    def test_groundhogignore(self, engine):
        """Names listed in .groundhogignore are neither captured nor rolled back."""
        target = engine.target
        (target / ".groundhogignore").write_text("# build output\nbuild\n")
        (target / "build").mkdir()
        (target / "build" / "out.bin").write_bytes(b"\x00\x01")
        (target / "a.txt").write_text("1")
        engine.snapshot("proj", "s1")

        (target / "build" / "out.bin").write_bytes(b"changed")
        result = engine.rollback("proj", "s1")

        assert result.diff.is_empty()
        assert (target / "build" / "out.bin").read_bytes() == b"changed"

    def test_rollback_keeps_directory_with_ignored_content(self, engine):
        """A new directory holding ignored files is kept, with those files."""
        target = engine.target
        (target / ".groundhogignore").write_text("cache\n")
        (target / "a.txt").write_text("1")
        engine.snapshot("proj", "s1")

        (target / "work" / "cache").mkdir(parents=True)
        (target / "work" / "x.txt").write_text("x")
        (target / "work" / "cache" / "big.bin").write_bytes(b"\x00" * 64)

        result = engine.rollback("proj", "s1")

        assert result.kept == ["work"]
        assert "work/x.txt" in result.applied
        assert not (target / "work" / "x.txt").exists()
        assert (target / "work" / "cache" / "big.bin").read_bytes() == b"\x00" * 64

    @pytest.mark.skipif(os.name != "posix", reason="file modes need posix")
    def test_deleted_file_restored_with_its_mode(self, engine):
        target = engine.target
        script = target / "run.sh"
        script.write_text("echo 1")
        os.chmod(script, 0o755)
        engine.snapshot("proj", "s1")
        script.unlink()

        engine.rollback("proj", "s1")

        assert script.read_text() == "echo 1"
        assert os.stat(script).st_mode & 0o777 == 0o755

    @pytest.mark.skipif(os.name != "posix", reason="file modes need posix")
    def test_mode_change_is_rolled_back(self, engine):
        target = engine.target
        script = target / "run.sh"
        script.write_text("echo 1")
        os.chmod(script, 0o755)
        record = engine.snapshot("proj", "s1")
        os.chmod(script, 0o644)

        result = engine.rollback("proj", "s1")

        assert result.diff.changed == ["run.sh"]
        assert os.stat(script).st_mode & 0o777 == 0o755
        assert engine.current_manifest("proj").root_hash == record.manifest


class TestSnapshotRecords:
    """Test record creation, listing, deletion and renaming."""

    @pytest.fixture
    def engine(self, tmp_path):
        target = tmp_path / "project"
        target.mkdir()
        (target / "a.txt").write_text("1")
        engine = SnapshotEngine(InMemoryScopeRegistry(), home=tmp_path / "home")
        engine.init(str(target), name="proj")
        engine.target = target
        return engine

    def test_record_fields(self, engine):
        (engine.target / "d").mkdir()
        (engine.target / "d" / "b.txt").write_text("22")

        record = engine.snapshot("proj", "s1")

        assert record.name == "s1"
        assert record.scope_name == "proj"
        assert record.locked is False
        assert record.file_count == 2
        assert record.blob_count == 2
        assert record.size == 3
        assert record.driver_kind == "filesystem"

    def test_duplicate_snapshot_name(self, engine):
        """A second snapshot with the same name is rejected unchanged."""
        first = engine.snapshot("proj", "s1")
        (engine.target / "a.txt").write_text("2")

        with pytest.raises(DuplicateNameError):
            engine.snapshot("proj", "s1")

        assert engine.list("proj") == [first]

    def test_list_is_ordered_by_creation(self, engine):
        engine.snapshot("proj", "b")
        engine.snapshot("proj", "a")
        engine.snapshot("proj", "c")

        assert [r.name for r in engine.list("proj")] == ["b", "a", "c"]

    def test_delete_removes_record_only(self, engine):
        """Deleting a record leaves blobs for gc."""
        engine.snapshot("proj", "s1")
        objects_before = engine.get_statistics("proj")["total_objects"]

        engine.delete("proj", "s1")

        assert engine.list("proj") == []
        assert engine.get_statistics("proj")["total_objects"] == objects_before

    def test_delete_unknown_snapshot(self, engine):
        with pytest.raises(NotFoundError):
            engine.delete("proj", "missing")

    def test_similar_names_get_separate_records(self, engine):
        """Names that differ only in separators or escapes never share a record."""
        names = ["a/b", "a_b", "a%2Fb", ".a", "..", "a b"]
        for i, name in enumerate(names):
            (engine.target / "a.txt").write_text(str(i))
            engine.snapshot("proj", name)

        assert sorted(r.name for r in engine.list("proj")) == sorted(names)
        snapshot_files = list((engine.target / ".groundhog" / "snapshots").iterdir())
        assert len(snapshot_files) == len(names)
        assert not any(f.name.startswith(".") for f in snapshot_files)

        engine.rollback("proj", "a/b")

        assert (engine.target / "a.txt").read_text() == "0"

    def test_record_file_for_other_name_is_not_found(self, engine):
        engine.snapshot("proj", "s1")
        snapshots = engine.target / ".groundhog" / "snapshots"
        (snapshots / "s2.json").write_bytes((snapshots / "s1.json").read_bytes())

        with pytest.raises(NotFoundError):
            engine.rollback("proj", "s2")
        with pytest.raises(NotFoundError):
            engine.delete("proj", "s2")

        assert [r.name for r in engine.list("proj")] == ["s1"]

    def test_password_sets_locked(self, engine):
        record = engine.snapshot("proj", "s1", password="secret")

        assert record.locked is True
        assert record.password_hash
        assert "secret" not in record.password_hash

    def test_locked_snapshot_needs_password_to_delete(self, engine):
        engine.snapshot("proj", "s1", password="secret")

        with pytest.raises(SnapshotLockedError):
            engine.delete("proj", "s1")
        with pytest.raises(SnapshotLockedError):
            engine.delete("proj", "s1", password="wrong")

        engine.delete("proj", "s1", password="secret")
        assert engine.list("proj") == []

    def test_rename_updates_records_and_registry(self, engine):
        engine.snapshot("proj", "s1")
        engine.snapshot("proj", "s2")

        scope = engine.rename("proj", "renamed")

        assert scope.name == "renamed"
        assert [s.name for s in engine.scopes()] == ["renamed"]
        assert {r.scope_name for r in engine.list("renamed")} == {"renamed"}
        with pytest.raises(NotFoundError):
            engine.list("proj")

    def test_rename_to_taken_name(self, engine, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        engine.init(str(other), name="other")
        engine.snapshot("proj", "s1")

        with pytest.raises(DuplicateNameError):
            engine.rename("proj", "other")

        assert engine.list("proj")[0].scope_name == "proj"

    def test_rollback_after_rename(self, engine):
        engine.snapshot("proj", "s1")
        engine.rename("proj", "renamed")
        (engine.target / "a.txt").write_text("changed")

        engine.rollback("renamed", "s1")

        assert (engine.target / "a.txt").read_text() == "1"


class TestScopes:
    """Test scope initialization, recovery and dropping."""

    @pytest.fixture
    def engine(self, tmp_path):
        return SnapshotEngine(InMemoryScopeRegistry(), home=tmp_path / "home")

    def test_init_creates_store(self, engine, tmp_path):
        scope = engine.init(str(tmp_path), name="root")

        assert scope.driver_kind == "filesystem"
        assert (tmp_path / ".groundhog" / "objects").is_dir()
        assert (tmp_path / ".groundhog" / "snapshots").is_dir()

    def test_init_default_name(self, engine, tmp_path):
        scope = engine.init(str(tmp_path))

        assert scope.name.startswith("scope-")
        assert len(scope.name) == len("scope-") + 8

    def test_init_duplicate_name(self, engine, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        engine.init(str(tmp_path / "a"), name="same")

        with pytest.raises(DuplicateNameError):
            engine.init(str(tmp_path / "b"), name="same")

        assert not (tmp_path / "b" / ".groundhog").exists()

    def test_init_missing_directory(self, engine, tmp_path):
        with pytest.raises(NotFoundError):
            engine.init(str(tmp_path / "nope"))

    def test_init_recovers_missing_store(self, engine, tmp_path):
        first = engine.init(str(tmp_path), name="root")
        shutil.rmtree(tmp_path / ".groundhog")

        again = engine.init(str(tmp_path))

        assert again == first
        assert (tmp_path / ".groundhog" / "objects").is_dir()
        assert len(engine.scopes()) == 1

    def test_init_existing_target_with_new_name_renames(self, engine, tmp_path):
        engine.init(str(tmp_path), name="old")

        scope = engine.init(str(tmp_path), name="new")

        assert scope.name == "new"
        assert [s.name for s in engine.scopes()] == ["new"]

    def test_drop_removes_store_and_registration(self, engine, tmp_path):
        (tmp_path / "a.txt").write_text("1")
        engine.init(str(tmp_path), name="root")
        engine.snapshot("root", "s1")

        engine.drop("root")

        assert not (tmp_path / ".groundhog").exists()
        assert (tmp_path / "a.txt").read_text() == "1"
        assert engine.scopes() == []

    def test_unknown_scope(self, engine):
        with pytest.raises(NotFoundError):
            engine.snapshot("ghost", "s1")

    def test_database_scope_is_unsupported(self, engine):
        """Database captures fail cleanly and write no record."""
        scope = engine.init("postgres://db.example/app", name="db")

        assert scope.driver_kind == "postgres"
        with pytest.raises(UnsupportedError) as excinfo:
            engine.snapshot("db", "s1")

        assert excinfo.value.driver_kind == "postgres"
        assert engine.list("db") == []
        assert engine.state("db") == "idle"
