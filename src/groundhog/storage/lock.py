"""
Advisory scope lock.

Exclusion comes from flock() on a lock file under the scope's store; the
kernel drops the lock when its holder exits, so a file left behind by a
dead process is simply taken over. The file also records the holder's
identity for busy errors. POSIX only.
"""

import fcntl
import json
import logging
import os
import socket
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..errors import IoFailureError, ScopeBusyError

logger = logging.getLogger(__name__)

# The lock file can be unlinked and recreated between open() and flock().
_ATTEMPTS = 3


class ScopeLock:
    """
    Exclusive, non-blocking lock over one scope's store.

    Usage:
        with ScopeLock(layout.lock_path, scope_name, 'snapshot'):
            ...

    A held lock is never waited on: acquisition fails with ScopeBusyError.
    A holder record from another host is always busy, since flock() does
    not reach across machines.
    """

    def __init__(self, path: Path, scope: str, operation: str):
        self.path = Path(path)
        self.scope = scope
        self.operation = operation
        self.held = False
        self._fd: Optional[int] = None

    def _holder_info(self) -> dict:
        return {
            'pid': os.getpid(),
            'hostname': socket.gethostname(),
            'acquired_at': datetime.now(timezone.utc).isoformat(),
            'operation': self.operation,
        }

    def read_holder(self) -> Optional[dict]:
        """Return the current holder's info, or None if unreadable."""
        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    def _open_locked(self) -> Optional[int]:
        """
        Open the lock file and flock it.

        Returns the descriptor, or None if the file was replaced while
        opening. Raises ScopeBusyError if another process holds it.
        """
        try:
            fd = os.open(str(self.path), os.O_CREAT | os.O_RDWR, 0o644)
        except OSError as e:
            raise IoFailureError("acquire_lock", str(self.path), e)

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise ScopeBusyError(self.scope, self.read_holder())
        except OSError as e:
            os.close(fd)
            raise IoFailureError("acquire_lock", str(self.path), e)

        # A releasing holder unlinks the file before unlocking it.
        try:
            current = os.stat(self.path).st_ino
        except FileNotFoundError:
            current = None
        if current != os.fstat(fd).st_ino:
            os.close(fd)
            return None
        return fd

    def _read_fd(self, fd: int) -> bytes:
        chunks = []
        os.lseek(fd, 0, os.SEEK_SET)
        while True:
            chunk = os.read(fd, 4096)
            if not chunk:
                return b''.join(chunks)
            chunks.append(chunk)

    def _check_previous(self, fd: int) -> None:
        raw = self._read_fd(fd)
        if not raw:
            return
        try:
            holder = json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError):
            holder = None
        if not isinstance(holder, dict):
            logger.warning("Lock file %s unreadable, reclaiming it", self.path)
            return
        if holder.get('hostname') != socket.gethostname():
            os.close(fd)
            raise ScopeBusyError(self.scope, holder)
        logger.warning(
            "Reclaiming stale lock on scope %s left by process %s",
            self.scope, holder.get('pid'),
        )

    def acquire(self) -> None:
        """
        Acquire the lock or raise ScopeBusyError.
        """
        for _ in range(_ATTEMPTS):
            fd = self._open_locked()
            if fd is None:
                continue
            self._check_previous(fd)
            try:
                os.ftruncate(fd, 0)
                os.lseek(fd, 0, os.SEEK_SET)
                os.write(fd, json.dumps(self._holder_info()).encode('utf-8'))
                os.fsync(fd)
            except OSError as e:
                os.close(fd)
                raise IoFailureError("acquire_lock", str(self.path), e)
            self._fd = fd
            self.held = True
            return

        raise ScopeBusyError(self.scope, self.read_holder())

    def release(self) -> None:
        if not self.held:
            return
        try:
            self.path.unlink(missing_ok=True)
        finally:
            fcntl.flock(self._fd, fcntl.LOCK_UN)
            os.close(self._fd)
            self._fd = None
            self.held = False

    def __enter__(self) -> 'ScopeLock':
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
