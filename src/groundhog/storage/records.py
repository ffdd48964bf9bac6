"""
Snapshot record storage.

One JSON file per named snapshot under the scope's snapshots directory.
"""

import json
import logging
from typing import List, Optional

from ..errors import CorruptError, IoFailureError, NotFoundError
from ..model.snapshot import SnapshotRecord
from .layout import StorageLayout, write_atomic

logger = logging.getLogger(__name__)


class RecordStore:
    """Named snapshot records of one scope's local store."""

    def __init__(self, layout: StorageLayout):
        self.layout = layout

    def put(self, record: SnapshotRecord) -> None:
        """Write a record atomically, replacing any record of the same name."""
        path = self.layout.get_record_path(record.name)
        data = json.dumps(record.to_dict(), indent=2, sort_keys=True).encode('utf-8')
        write_atomic(path, data)

    def get(self, name: str) -> SnapshotRecord:
        """
        Load a record by snapshot name.

        Raises NotFoundError if no such record exists.
        """
        record = self.find(name)
        if record is None:
            raise NotFoundError("snapshot", name)
        return record

    def find(self, name: str) -> Optional[SnapshotRecord]:
        """Load a record by name, or None if no record carries that name."""
        path = self.layout.get_record_path(name)
        if not path.exists():
            return None
        record = self._load(path)
        if record.name != name:
            logger.warning("record file %s holds snapshot %r, not %r", path.name, record.name, name)
            return None
        return record

    def exists(self, name: str) -> bool:
        return self.layout.get_record_path(name).exists()

    def delete(self, name: str) -> bool:
        """
        Delete a record.

        Returns True if deleted, False if didn't exist.
        """
        path = self.layout.get_record_path(name)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise IoFailureError("delete_snapshot", str(path), e)

    def list(self) -> List[SnapshotRecord]:
        """All records, oldest first. Files not named after their record are skipped."""
        records = []
        for path in self.layout.list_record_paths():
            record = self._load(path)
            if self.layout.get_record_path(record.name) == path:
                records.append(record)
        return sorted(records, key=lambda r: (r.created_at, r.name))

    def latest(self) -> SnapshotRecord:
        """
        Record with the greatest created_at.

        Raises NotFoundError if there are no snapshots.
        """
        records = self.list()
        if not records:
            raise NotFoundError("snapshot", "latest")
        return records[-1]

    def _load(self, path) -> SnapshotRecord:
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except OSError as e:
            raise IoFailureError("read_snapshot", str(path), e)
        except json.JSONDecodeError as e:
            raise CorruptError(path.name, f"snapshot record is not valid JSON: {e}")
        try:
            return SnapshotRecord.from_dict(data)
        except ValueError as e:
            raise CorruptError(path.name, str(e))
