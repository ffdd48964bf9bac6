"""
Snapshot record model.

A record names one manifest root hash within a scope. Records are
immutable apart from their name fields.
"""

from datetime import datetime, timezone
from typing import Optional


class SnapshotRecord:
    """
    Immutable snapshot record.
    
    Records reference blobs only through their manifest root hash;
    they never own blobs.
    """
    
    def __init__(
        self,
        name: str,
        scope_name: str,
        manifest: str,
        created_at: Optional[datetime] = None,
        locked: bool = False,
        size: int = 0,
        blob_count: int = 0,
        file_count: int = 0,
        driver_kind: str = 'filesystem',
        password_hash: Optional[str] = None,
    ):
        self.name = name
        self.scope_name = scope_name
        self.manifest = manifest
        self.created_at = created_at or datetime.now(timezone.utc)
        self.locked = locked
        self.size = size
        self.blob_count = blob_count
        self.file_count = file_count
        self.driver_kind = driver_kind
        self.password_hash = password_hash
    
    def to_dict(self) -> dict:
        """Convert record to its stored dictionary form."""
        obj = {
            'name': self.name,
            'scope_name': self.scope_name,
            'manifest': self.manifest,
            'created_at': self.created_at.isoformat(),
            'locked': self.locked,
            'size': self.size,
            'blob_count': self.blob_count,
            'file_count': self.file_count,
            'driver_kind': self.driver_kind,
        }
        if self.password_hash:
            obj['password_hash'] = self.password_hash
        return obj
    
    @classmethod
    def from_dict(cls, data: dict) -> 'SnapshotRecord':
        """
        Reconstruct record from stored dictionary.
        
        Raises ValueError if data is invalid.
        """
        for field in ('name', 'scope_name', 'manifest', 'created_at'):
            if field not in data:
                raise ValueError(f"Snapshot record missing {field} field")
        
        return cls(
            name=data['name'],
            scope_name=data['scope_name'],
            manifest=data['manifest'],
            created_at=datetime.fromisoformat(data['created_at']),
            locked=bool(data.get('locked', False)),
            size=int(data.get('size', 0)),
            blob_count=int(data.get('blob_count', 0)),
            file_count=int(data.get('file_count', 0)),
            driver_kind=data.get('driver_kind', 'filesystem'),
            password_hash=data.get('password_hash'),
        )
    
    def with_names(self, name: str = None, scope_name: str = None) -> 'SnapshotRecord':
        """
        Create a copy with a new name or scope name.
        
        Returns new SnapshotRecord instance (immutable).
        """
        data = self.to_dict()
        if name is not None:
            data['name'] = name
        if scope_name is not None:
            data['scope_name'] = scope_name
        return SnapshotRecord.from_dict(data)
    
    def __eq__(self, other) -> bool:
        return isinstance(other, SnapshotRecord) and self.to_dict() == other.to_dict()
    
    def __repr__(self) -> str:
        return (
            f"SnapshotRecord(name={self.name!r}, scope={self.scope_name!r}, "
            f"manifest={self.manifest[:8]}..., locked={self.locked})"
        )
