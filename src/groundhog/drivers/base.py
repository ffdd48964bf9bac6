from abc import ABC, abstractmethod
from typing import Iterator, Optional, Tuple


class BackendDriver(ABC):
    """Capability interface between a scope's live state and the engine.

    Implementations: FilesystemDriver, DatabaseDriver (unsupported stubs).
    Paths are POSIX-style and relative to the scope target.
    """

    kind: Optional[str] = None

    @abstractmethod
    def enumerate(self) -> Iterator[Tuple[str, str]]:
        """Lazily yield (relative_path, kind) for every entry, parents first."""
        pass

    @abstractmethod
    def capture_entry(self, path: str) -> bytes:
        """Return the bytes that represent one entry."""
        pass

    def capture_mode(self, path: str) -> Optional[int]:
        """Permission bits of a file entry, or None if the backend has none."""
        return None

    @abstractmethod
    def restore_entry(self, path: str, kind: str, data: bytes, mode: Optional[int] = None) -> None:
        """Make the entry at path a `kind` holding `data`."""
        pass

    @abstractmethod
    def remove_entry(self, path: str) -> bool:
        """Remove the entry at path. Missing entries are not an error.

        Returns False when the entry was kept because it still holds
        content outside the capture.
        """
        pass
