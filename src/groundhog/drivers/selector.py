from typing import Optional

from ..model.scope import FILESYSTEM, MYSQL, POSTGRES, SQLITE, Scope
from .base import BackendDriver
from .database import DatabaseDriver
from .filesystem import FilesystemDriver


def select_driver_kind(target: str) -> str:
    """Pick the driver kind for a target path or connection URI."""
    if target.startswith("mysql://"):
        return MYSQL
    if target.startswith(("postgres://", "postgresql://")):
        return POSTGRES
    if target.startswith("sqlite://") or target.endswith(".sqlite"):
        return SQLITE
    return FILESYSTEM


def create_driver(scope: Scope, config: Optional[dict] = None) -> BackendDriver:
    """Create the backend driver for a resolved scope.

    Config keys:
        ignore: extra names excluded from filesystem captures
    """
    config = config or {}

    if scope.driver_kind == FILESYSTEM:
        return FilesystemDriver(scope.target, ignore=config.get("ignore", ()))

    if scope.driver_kind in (POSTGRES, MYSQL, SQLITE):
        return DatabaseDriver(scope.driver_kind, scope.target)

    raise ValueError(f"Unknown driver kind: {scope.driver_kind!r}")
