"""
Blob object model.

Blobs store raw bytes content-addressed by hash.
"""

from ..integrity.hashing import compute_hash


class Blob:
    """
    Immutable blob holding the bytes of one captured leaf.
    
    Blobs are leaf objects - they contain no references.
    """
    
    def __init__(self, data: bytes):
        self.data = bytes(data)
        self._address = None
    
    @property
    def address(self) -> str:
        """Content address of this blob."""
        if self._address is None:
            self._address = compute_hash(self.data)
        return self._address
    
    def size(self) -> int:
        """Get size of blob data in bytes."""
        return len(self.data)
    
    def __eq__(self, other) -> bool:
        return isinstance(other, Blob) and self.data == other.data
    
    def __hash__(self) -> int:
        return hash(self.address)
    
    def __repr__(self) -> str:
        return f"Blob(size={len(self.data)}, hash={self.address[:8]}...)"
