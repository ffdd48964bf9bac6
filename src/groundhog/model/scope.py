"""
Scope model.

A scope is a named, registered backup target.
"""

from datetime import datetime, timezone
from typing import Optional

FILESYSTEM = 'filesystem'
POSTGRES = 'postgres'
MYSQL = 'mysql'
SQLITE = 'sqlite'

DRIVER_KINDS = (FILESYSTEM, POSTGRES, MYSQL, SQLITE)


class Scope:
    """Registered target: a directory path or a database connection URI."""
    
    def __init__(
        self,
        name: str,
        target: str,
        driver_kind: str = FILESYSTEM,
        created_at: Optional[datetime] = None,
    ):
        if driver_kind not in DRIVER_KINDS:
            raise ValueError(f"Unknown driver kind: {driver_kind}")
        self.name = name
        self.target = target
        self.driver_kind = driver_kind
        self.created_at = created_at or datetime.now(timezone.utc)
    
    def renamed(self, new_name: str) -> 'Scope':
        return Scope(new_name, self.target, self.driver_kind, self.created_at)
    
    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'target': self.target,
            'driver_kind': self.driver_kind,
            'created_at': self.created_at.isoformat(),
        }
    
    @classmethod
    def from_dict(cls, data: dict) -> 'Scope':
        """
        Reconstruct scope from a registry entry.
        
        Raises ValueError if data is invalid.
        """
        for field in ('name', 'target'):
            if field not in data:
                raise ValueError(f"Scope missing {field} field")
        created_at = data.get('created_at')
        return cls(
            name=data['name'],
            target=data['target'],
            driver_kind=data.get('driver_kind', FILESYSTEM),
            created_at=datetime.fromisoformat(created_at) if created_at else None,
        )
    
    def __eq__(self, other) -> bool:
        return (
            isinstance(other, Scope)
            and self.name == other.name
            and self.target == other.target
            and self.driver_kind == other.driver_kind
        )
    
    def __repr__(self) -> str:
        return f"Scope(name={self.name!r}, target={self.target!r}, driver={self.driver_kind})"
