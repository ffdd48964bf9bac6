"""
Canonical encoding for deterministic hashing.

Ensures same input always produces same hash.
"""

import json
from typing import Any


def canonical_json(obj: Any) -> bytes:
    """
    Encode an object to canonical JSON bytes.
    
    Rules:
    - Keys sorted alphabetically
    - No whitespace
    - UTF-8 encoding
    - No NaN or infinity
    
    Same input always produces same output.
    """
    json_str = json.dumps(
        obj,
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
        allow_nan=False,
    )
    return json_str.encode('utf-8')


def decode_canonical(data: bytes) -> Any:
    """Decode bytes produced by canonical_json."""
    return json.loads(data.decode('utf-8'))
