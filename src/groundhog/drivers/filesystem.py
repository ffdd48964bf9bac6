"""Filesystem backend driver.

Enumerates a directory tree without following symlinks and applies
restores entry by entry, so a rollback only touches the paths it is given.
Directories are only ever removed once empty; content excluded from the
capture keeps its directory alive.
"""

import errno
import logging
import os
import stat
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator, Optional, Tuple

from ..errors import IoFailureError
from ..ignore import get_ignore_set, should_ignore
from ..model.tree import DIR, FILE, SYMLINK
from ..storage.layout import write_atomic
from .base import BackendDriver

logger = logging.getLogger(__name__)

DEFAULT_FILE_MODE = 0o644


class FilesystemDriver(BackendDriver):
    """Driver for a directory scope."""

    kind = "filesystem"

    def __init__(self, root, ignore: Iterable[str] = ()):
        self.root = Path(root).absolute()
        self.ignore_set = get_ignore_set(self.root, ignore)

    def _abs(self, path: str) -> Path:
        rel = PurePosixPath(path)
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise ValueError(f"Invalid relative path: {path!r}")
        return self.root.joinpath(*rel.parts)

    def enumerate(self) -> Iterator[Tuple[str, str]]:
        if not self.root.is_dir():
            raise IoFailureError("enumerate", str(self.root),
                                 FileNotFoundError("scope target is not a directory"))
        return self._scan(self.root, "")

    def _scan(self, directory, prefix: str) -> Iterator[Tuple[str, str]]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            raise IoFailureError("enumerate", str(directory), e)

        for entry in entries:
            rel = f"{prefix}/{entry.name}" if prefix else entry.name
            if should_ignore(rel, self.ignore_set):
                continue
            try:
                if entry.is_symlink():
                    yield rel, SYMLINK
                elif entry.is_dir(follow_symlinks=False):
                    yield rel, DIR
                    yield from self._scan(entry.path, rel)
                elif entry.is_file(follow_symlinks=False):
                    yield rel, FILE
                else:
                    logger.debug("skipping special file %s", rel)
            except OSError as e:
                raise IoFailureError("enumerate", entry.path, e)

    def capture_entry(self, path: str) -> bytes:
        target = self._abs(path)
        try:
            mode = target.lstat().st_mode
            if stat.S_ISLNK(mode):
                return os.fsencode(os.readlink(target))
            if stat.S_ISDIR(mode):
                return b""
            return target.read_bytes()
        except OSError as e:
            raise IoFailureError("capture", str(target), e)

    def capture_mode(self, path: str) -> Optional[int]:
        target = self._abs(path)
        try:
            mode = target.lstat().st_mode
        except OSError as e:
            raise IoFailureError("capture", str(target), e)
        return stat.S_IMODE(mode) if stat.S_ISREG(mode) else None

    def restore_entry(self, path: str, kind: str, data: bytes, mode: Optional[int] = None) -> None:
        """Write one entry in place.

        An entry of a different kind is replaced first. A directory in the
        way is only removed when empty, so ignored content inside it makes
        the restore fail instead of being deleted.

        Files get the recorded mode, else keep the mode of the file they
        replace, else DEFAULT_FILE_MODE.
        """
        target = self._abs(path)
        try:
            existing = target.lstat()
        except FileNotFoundError:
            existing = None
        except OSError as e:
            raise IoFailureError("restore", str(target), e)

        try:
            if existing is not None:
                is_dir = stat.S_ISDIR(existing.st_mode)
                if is_dir and kind != DIR:
                    target.rmdir()
                    existing = None
                elif not is_dir and kind != FILE:
                    target.unlink()
                    existing = None

            target.parent.mkdir(parents=True, exist_ok=True)

            if kind == DIR:
                target.mkdir(exist_ok=True)
            elif kind == SYMLINK:
                os.symlink(os.fsdecode(data), target)
            else:
                if mode is None:
                    mode = DEFAULT_FILE_MODE
                    if existing is not None and stat.S_ISREG(existing.st_mode):
                        mode = stat.S_IMODE(existing.st_mode)
                write_atomic(target, data, durable=False)
                os.chmod(target, mode)
        except OSError as e:
            raise IoFailureError("restore", str(target), e)

        logger.debug("restored %s (%s)", path, kind)

    def remove_entry(self, path: str) -> bool:
        target = self._abs(path)
        try:
            mode = target.lstat().st_mode
        except FileNotFoundError:
            return True
        except OSError as e:
            raise IoFailureError("remove", str(target), e)

        try:
            if stat.S_ISDIR(mode):
                target.rmdir()
            else:
                target.unlink()
        except FileNotFoundError:
            return True
        except OSError as e:
            if stat.S_ISDIR(mode) and e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                logger.warning("kept %s: it still holds entries outside the capture", path)
                return False
            raise IoFailureError("remove", str(target), e)

        logger.debug("removed %s", path)
        return True

    def __repr__(self) -> str:
        return f"FilesystemDriver(root={str(self.root)!r})"
