"""Database backend placeholders.

Each capability fails with UnsupportedError so the engine can refuse the
operation before it writes anything.
"""

from typing import Optional

from ..errors import UnsupportedError
from .base import BackendDriver


class DatabaseDriver(BackendDriver):
    """Stub for postgres, mysql and sqlite targets."""

    def __init__(self, kind: str, target: str):
        self.kind = kind
        self.target = target

    def enumerate(self):
        raise UnsupportedError(self.kind, "enumerate")

    def capture_entry(self, path: str) -> bytes:
        raise UnsupportedError(self.kind, "capture_entry")

    def restore_entry(self, path: str, kind: str, data: bytes, mode: Optional[int] = None) -> None:
        raise UnsupportedError(self.kind, "restore_entry")

    def remove_entry(self, path: str) -> bool:
        raise UnsupportedError(self.kind, "remove_entry")

    def __repr__(self) -> str:
        return f"DatabaseDriver(kind={self.kind!r}, target={self.target!r})"
