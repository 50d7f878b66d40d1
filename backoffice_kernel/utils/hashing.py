"""
Deterministic hashing utilities.

All hashing in the back office must be deterministic and reproducible.
This module provides the canonical hashing functions used by the audit
chain and by the engine tracer's input fingerprints.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        # 90.00 and 90 hash identically
        return format(obj.normalize(), "f")
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, there is no whitespace, and Decimal, datetime, UUID and
    Enum values have one fixed representation.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_safe(data: Any) -> Any:
    """Round-trip data through the canonical serializer into plain JSON types."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """
    Compute SHA-256 hash of a payload.

    Returns:
        Hex-encoded SHA-256 hash (64 characters).
    """
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_record(
    table_name: str,
    record_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute hash for an audit record.

    The hash includes all key fields plus the previous record's hash,
    creating a tamper-evident chain.

    Args:
        table_name: Table of the entity being audited.
        record_id: ID of the entity.
        action: Action being recorded.
        payload_hash: Hash of the record payload.
        prev_hash: Hash of the previous audit record (None for genesis).

    Returns:
        Hex-encoded SHA-256 hash.
    """
    components = [
        table_name,
        str(record_id),
        action,
        payload_hash,
        prev_hash or "GENESIS",
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
