"""
Deterministic hashing utilities.

Every hash the posting engine stores must be reproducible from the same
inputs, so payloads are serialized canonically before hashing.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        # 2.50 and 2.5 are the same amount
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: Any) -> str:
    """
    Convert data to canonical JSON: keys sorted at every level, no whitespace.

    Two payloads that differ only in key order produce the same string.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def sha256_hex(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    """Hex SHA-256 of the canonical JSON of ``payload``."""
    return sha256_hex(canonicalize_json(payload))
