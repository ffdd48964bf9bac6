"""
Filesystem layout for a scope's local store.

Implements content-addressed storage with directory sharding.
"""

import hashlib
import os
import tempfile
from pathlib import Path
from urllib.parse import quote

from ..errors import IoFailureError
from ..integrity.hashing import get_hash_prefix

STORE_DIRNAME = '.groundhog'
IGNORE_FILENAME = '.groundhogignore'


def store_root_for(scope, home: Path) -> Path:
    """
    Locate the local store of a scope.
    
    Filesystem scopes keep it inside the target directory; other
    targets get a directory under the groundhog home keyed by target.
    """
    if scope.driver_kind == 'filesystem':
        return Path(scope.target) / STORE_DIRNAME
    digest = hashlib.sha256(scope.target.encode('utf-8')).hexdigest()[:16]
    return Path(home) / 'stores' / digest


class StorageLayout:
    """
    Manages filesystem layout for one scope's store.
    
    Layout:
        .groundhog/
            objects/
                <prefix>/
                    <hash>       # blob or tree object
            snapshots/
                <name>.json      # snapshot records
            config.json          # optional per-scope settings
            lock                 # advisory lock while an operation runs
    """
    
    def __init__(self, store_root: Path):
        """Initialize storage layout at given root."""
        self.store_root = Path(store_root).absolute()
        self.objects_dir = self.store_root / "objects"
        self.snapshots_dir = self.store_root / "snapshots"
        self.config_path = self.store_root / "config.json"
        self.lock_path = self.store_root / "lock"
    
    def initialize(self) -> None:
        """
        Initialize storage directory structure.
        
        Idempotent - safe to call multiple times.
        """
        try:
            self.store_root.mkdir(parents=True, exist_ok=True)
            self.objects_dir.mkdir(exist_ok=True)
            self.snapshots_dir.mkdir(exist_ok=True)
        except OSError as e:
            raise IoFailureError("initialize", str(self.store_root), e)
    
    def exists(self) -> bool:
        return self.objects_dir.is_dir() and self.snapshots_dir.is_dir()
    
    def get_object_path(self, obj_hash: str) -> Path:
        """
        Get filesystem path for an object by its hash.
        
        Uses 2-character prefix for directory sharding.
        """
        prefix = get_hash_prefix(obj_hash, 2)
        return self.objects_dir / prefix / obj_hash
    
    def get_record_path(self, name: str) -> Path:
        """Get path for a snapshot record."""
        return self.snapshots_dir / f"{self._sanitize_name(name)}.json"
    
    def ensure_object_directory(self, obj_hash: str) -> Path:
        """Ensure the shard directory for an object exists."""
        prefix_dir = self.objects_dir / get_hash_prefix(obj_hash, 2)
        try:
            prefix_dir.mkdir(exist_ok=True)
        except OSError as e:
            raise IoFailureError("mkdir", str(prefix_dir), e)
        return prefix_dir
    
    def list_all_objects(self) -> list[str]:
        """
        List all object hashes in the store.
        
        Scans all prefix directories; temp files are skipped.
        """
        objects = []
        
        if not self.objects_dir.exists():
            return objects
        
        try:
            for prefix_dir in self.objects_dir.iterdir():
                if not prefix_dir.is_dir():
                    continue
                
                for obj_file in prefix_dir.iterdir():
                    if obj_file.is_file() and not obj_file.name.startswith('.tmp_'):
                        objects.append(obj_file.name)
        
        except OSError as e:
            raise IoFailureError("list_objects", str(self.objects_dir), e)
        
        return objects
    
    def list_record_paths(self) -> list[Path]:
        """List all snapshot record files."""
        if not self.snapshots_dir.exists():
            return []
        
        try:
            return sorted(
                f for f in self.snapshots_dir.iterdir()
                if f.is_file() and f.suffix == '.json'
            )
        except OSError as e:
            raise IoFailureError("list_snapshots", str(self.snapshots_dir), e)
    
    def object_exists(self, obj_hash: str) -> bool:
        """Check if an object exists in storage."""
        return self.get_object_path(obj_hash).exists()
    
    @staticmethod
    def _sanitize_name(name: str) -> str:
        """
        Encode a name for safe filesystem use.
        
        Percent-encoding keeps distinct names on distinct files and
        leaves no path separators; a leading dot is encoded too, so a
        record can never be hidden or named '..'.
        """
        if not name:
            raise ValueError("Name cannot be empty")
        safe = quote(name, safe='')
        if safe.startswith('.'):
            safe = '%2E' + safe[1:]
        return safe


def fsync_directory(path: Path) -> None:
    """Flush a directory entry so a rename inside it survives a crash."""
    if os.name != 'posix':
        return
    fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def write_atomic(path: Path, data: bytes, durable: bool = True) -> None:
    """
    Write a file atomically.
    
    Uses temp file + rename in the same directory. With durable=True the
    file and its directory are fsynced before returning.
    """
    dir_path = path.parent
    fd = None
    temp_path = None
    try:
        fd, temp_path = tempfile.mkstemp(dir=str(dir_path), prefix='.tmp_')
        
        view = memoryview(data)
        while view:
            written = os.write(fd, view)
            view = view[written:]
        if durable:
            os.fsync(fd)
        os.close(fd)
        fd = None
        
        os.replace(temp_path, path)
        temp_path = None
        
        if durable:
            fsync_directory(dir_path)
    
    except OSError as e:
        raise IoFailureError("write_file", str(path), e)
    finally:
        if fd is not None:
            os.close(fd)
        if temp_path is not None and os.path.exists(temp_path):
            os.unlink(temp_path)
