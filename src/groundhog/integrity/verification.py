"""
Integrity verification for stored manifests.

Provides tamper detection and recursive verification.
"""

from collections import deque
from typing import List, Set, Tuple

from ..errors import CorruptError, GroundhogError, NotFoundError
from ..model.tree import DIR
from ..storage.gc import tree_references
from .hashing import compute_hash


def verify_object_integrity(data: bytes, expected_hash: str) -> None:
    """
    Verify that an object's content matches its address.

    Raises CorruptError if mismatch detected.
    """
    actual_hash = compute_hash(data)
    if actual_hash != expected_hash:
        raise CorruptError(expected_hash, f"content hashes to {actual_hash}")


def verify_manifest_recursive(store, root_hash: str) -> Tuple[bool, List[str], int]:
    """
    Verify a manifest and every object it references.

    store: ContentStore holding the objects
    root_hash: manifest root address

    Every object is checked once, even when shared by several
    directories. A directory reference is expanded even if a file with
    the same bytes was checked first.

    Returns (is_valid, errors, checked) where errors is a list of
    error messages and checked the number of objects examined.
    """
    errors: List[str] = []
    checked: Set[str] = set()
    bad: Set[str] = set()
    expanded: Set[str] = set()
    queue = deque([(DIR, root_hash)])

    while queue:
        kind, address = queue.popleft()
        if address in bad or address in expanded:
            continue
        if kind != DIR and address in checked:
            continue

        try:
            data = store.get(address, verify=False)
            if address not in checked:
                verify_object_integrity(data, address)
        except NotFoundError:
            errors.append(f"Missing object {address} ({kind})")
            bad.add(address)
        except CorruptError as e:
            errors.append(str(e))
            bad.add(address)
        except GroundhogError as e:
            errors.append(f"Failed to load {address}: {e}")
            bad.add(address)
        finally:
            checked.add(address)

        if address in bad or kind != DIR:
            continue

        expanded.add(address)
        try:
            queue.extend(tree_references(data, address))
        except CorruptError as e:
            errors.append(str(e))

    return len(errors) == 0, errors, len(checked)
