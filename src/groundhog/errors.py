"""
Error types for groundhog operations.

All errors are explicit and never silent.
"""

from typing import List, Optional


class GroundhogError(Exception):
    """Base exception for all groundhog errors."""
    pass


class NotFoundError(GroundhogError):
    """Raised when a scope, snapshot or blob does not exist."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} not found: {name}")


class DuplicateNameError(GroundhogError):
    """Raised when a scope or snapshot name is already taken."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} '{name}' already exists")


class ScopeBusyError(GroundhogError):
    """Raised when another invocation holds the scope lock."""

    def __init__(self, scope: str, holder: Optional[dict] = None):
        self.scope = scope
        self.holder = holder or {}
        msg = f"Scope busy: {scope}"
        if self.holder:
            msg += (
                f" (held by pid {self.holder.get('pid')} on "
                f"{self.holder.get('hostname')} for {self.holder.get('operation')})"
            )
        super().__init__(msg)


class UnsupportedError(GroundhogError):
    """Raised when a driver does not implement a capability."""

    def __init__(self, driver_kind: str, capability: str = None):
        self.driver_kind = driver_kind
        self.capability = capability
        msg = f"Driver '{driver_kind}' is not supported yet"
        if capability:
            msg += f" (capability: {capability})"
        super().__init__(msg)


class CorruptError(GroundhogError):
    """
    Raised when the store does not hold what a manifest says it holds.

    Either an object is missing or its content no longer matches its address.
    """

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Store corrupted at {address}: {reason}")


class IoFailureError(GroundhogError):
    """Raised when an underlying read or write fails."""

    def __init__(self, operation: str, path: str, cause: Exception = None):
        self.operation = operation
        self.path = path
        self.cause = cause
        msg = f"I/O failure during {operation}: {path}"
        if cause:
            msg += f"\nCause: {cause}"
        super().__init__(msg)


class PartialRollbackError(GroundhogError):
    """
    Raised when a rollback could not apply every entry.

    The scope is left partially rolled back; re-running the rollback is safe.
    """

    def __init__(self, applied: List[str], unapplied: List[str], errors: dict = None):
        self.applied = list(applied)
        self.unapplied = list(unapplied)
        self.errors = dict(errors or {})
        total = len(self.applied) + len(self.unapplied)
        super().__init__(
            f"Rollback incomplete: applied {len(self.applied)} of {total} entries\n"
            f"Unapplied: {', '.join(self.unapplied)}"
        )


class SnapshotLockedError(GroundhogError):
    """Raised when a password-locked snapshot is modified without its password."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Snapshot '{name}' is locked; password missing or incorrect")
