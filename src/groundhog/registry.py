"""
Scope registry.

Durable mapping of scope name to backend target. The engine receives a
registry instance explicitly; nothing here is process-global.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from .errors import CorruptError, DuplicateNameError, NotFoundError
from .model.scope import Scope
from .storage.layout import write_atomic

logger = logging.getLogger(__name__)


class ScopeRegistry(ABC):
    """
    Base registry.

    Subclasses only decide where the list of scopes lives.
    """

    @abstractmethod
    def _load(self) -> List[Scope]:
        pass

    @abstractmethod
    def _save(self, scopes: List[Scope]) -> None:
        pass

    def list(self) -> List[Scope]:
        """All registered scopes, in registration order."""
        return self._load()

    def resolve(self, name: str) -> Scope:
        """
        Look up a scope by name.

        Raises NotFoundError if no scope has that name.
        """
        for scope in self._load():
            if scope.name == name:
                return scope
        raise NotFoundError("scope", name)

    def find_by_target(self, target: str) -> Optional[Scope]:
        for scope in self._load():
            if scope.target == target:
                return scope
        return None

    def register(self, scope: Scope) -> None:
        """
        Add a scope.

        Raises DuplicateNameError if the name is taken.
        """
        scopes = self._load()
        if any(s.name == scope.name for s in scopes):
            raise DuplicateNameError("scope", scope.name)
        scopes.append(scope)
        self._save(scopes)
        logger.info("registered scope %s -> %s", scope.name, scope.target)

    def rename(self, old_name: str, new_name: str) -> Scope:
        """
        Rename a scope.

        Raises NotFoundError for an unknown scope and DuplicateNameError
        if new_name is taken.
        """
        scopes = self._load()
        if any(s.name == new_name for s in scopes):
            raise DuplicateNameError("scope", new_name)
        for i, scope in enumerate(scopes):
            if scope.name == old_name:
                scopes[i] = scope.renamed(new_name)
                self._save(scopes)
                return scopes[i]
        raise NotFoundError("scope", old_name)

    def remove(self, name: str) -> Scope:
        """
        Remove a scope.

        Raises NotFoundError if no scope has that name.
        """
        scopes = self._load()
        for i, scope in enumerate(scopes):
            if scope.name == name:
                del scopes[i]
                self._save(scopes)
                return scope
        raise NotFoundError("scope", name)


class InMemoryScopeRegistry(ScopeRegistry):
    """Registry held in memory, for tests and embedding."""

    def __init__(self, scopes: Optional[List[Scope]] = None):
        self._scopes = list(scopes or [])

    def _load(self) -> List[Scope]:
        return list(self._scopes)

    def _save(self, scopes: List[Scope]) -> None:
        self._scopes = list(scopes)


class JsonScopeRegistry(ScopeRegistry):
    """
    Registry persisted as a JSON list of scopes.

    Default location: $GROUNDHOG_HOME/registry.json.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> List[Scope]:
        if not self.path.exists():
            return []
        content = self.path.read_text(encoding='utf-8')
        if not content.strip():
            return []
        try:
            return [Scope.from_dict(item) for item in json.loads(content)]
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise CorruptError(str(self.path), f"unreadable scope registry: {e}")

    def _save(self, scopes: List[Scope]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps([s.to_dict() for s in scopes], indent=2)
        write_atomic(self.path, data.encode('utf-8'))
