"""
Content-addressed blob storage.

Provides immutable, deduplicated storage keyed by content hash.
"""

import logging
from typing import Iterable, Set

from ..errors import CorruptError, IoFailureError, NotFoundError
from ..integrity.hashing import compute_hash, is_valid_address
from .layout import StorageLayout, write_atomic

logger = logging.getLogger(__name__)


class ContentStore:
    """
    Content-addressed blob store with immutable objects.

    Objects are stored by their content hash.
    Once written, objects never change.
    """

    def __init__(self, layout: StorageLayout, verify: bool = True):
        """
        Args:
            layout: storage layout of the owning scope
            verify: re-hash objects on read by default
        """
        self.layout = layout
        self.verify = verify

    def put(self, data: bytes) -> str:
        """
        Store bytes and return their address.

        The object is stored immutably:
        - Address is computed from the content
        - Object is written atomically and fsynced
        - If the address already exists, nothing is written (idempotent)
        """
        address = compute_hash(data)
        obj_path = self.layout.get_object_path(address)

        if obj_path.exists():
            return address

        self.layout.ensure_object_directory(address)
        write_atomic(obj_path, data)
        logger.debug("stored object %s (%d bytes)", address[:12], len(data))

        return address

    def get(self, address: str, verify: bool = None) -> bytes:
        """
        Retrieve bytes by address.

        Raises NotFoundError if the object doesn't exist.
        Raises CorruptError if verification fails.
        """
        if not is_valid_address(address):
            raise NotFoundError("blob", str(address))

        obj_path = self.layout.get_object_path(address)

        try:
            data = obj_path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError("blob", address)
        except OSError as e:
            raise IoFailureError("read_object", str(obj_path), e)

        if verify is None:
            verify = self.verify
        if verify:
            actual = compute_hash(data)
            if actual != address:
                raise CorruptError(address, f"content hashes to {actual}")

        return data

    def has(self, address: str) -> bool:
        """Check if an object exists in the store."""
        return is_valid_address(address) and self.layout.object_exists(address)

    def delete(self, address: str) -> bool:
        """
        Delete an object from the store.

        Used by garbage collection only.

        Returns True if deleted, False if didn't exist.
        """
        obj_path = self.layout.get_object_path(address)

        try:
            obj_path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise IoFailureError("delete_object", str(obj_path), e)

    def list_all(self) -> list[str]:
        """List all object addresses in the store."""
        return self.layout.list_all_objects()

    def size_of(self, address: str) -> int:
        try:
            return self.layout.get_object_path(address).stat().st_size
        except FileNotFoundError:
            return 0

    def gc(self, live_addresses: Iterable[str], dry_run: bool = False) -> dict:
        """
        Sweep every object not in live_addresses.

        The caller must hold the scope lock so no capture can add new
        references while the sweep runs.

        Returns dict with:
            - live: number of live objects present
            - unreachable: set of unreachable addresses
            - deleted: list of deleted addresses (empty if dry_run)
            - reclaimed_bytes: bytes freed (or that would be freed)
        """
        live: Set[str] = set(live_addresses)
        stored = set(self.list_all())
        unreachable = stored - live

        result = {
            'live': len(stored & live),
            'unreachable': unreachable,
            'deleted': [],
            'reclaimed_bytes': 0,
        }

        for address in sorted(unreachable):
            size = self.size_of(address)
            if dry_run:
                result['reclaimed_bytes'] += size
                continue
            if self.delete(address):
                result['deleted'].append(address)
                result['reclaimed_bytes'] += size

        return result

    def stats(self) -> dict:
        """
        Get storage statistics.

        Returns dict with:
        - total_objects: number of objects
        - total_size_bytes: total size in bytes
        """
        addresses = self.list_all()
        return {
            'total_objects': len(addresses),
            'total_size_bytes': sum(self.size_of(a) for a in addresses),
        }
