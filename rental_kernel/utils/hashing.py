"""
Canonical JSON and SHA-256 helpers for the audit chain.

An audit payload is hashed over its canonical JSON form: sorted keys, no
whitespace, amounts normalized so that 150000 and 150000.00 agree.  The
same form is what gets stored, so a stored payload re-hashes to its
``payload_hash``.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"
_SEPARATOR = "|"


def _encode_value(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj.normalize())
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"Cannot put {type(obj).__name__} in an audit payload")


def canonicalize_json(data: Any) -> str:
    """Deterministic JSON text for ``data``."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=_encode_value)


def to_json_safe(data: dict) -> dict:
    """The payload exactly as it will be hashed, as plain JSON values."""
    return json.loads(canonicalize_json(data))


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_payload(payload: dict) -> str:
    return _sha256(canonicalize_json(payload))


def hash_audit_event(
    entity_type: str,
    entity_id: str,
    action: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Link hash of one audit event.

    Covers the entity, the action, the payload hash and the previous
    event's hash (``GENESIS`` for the first event), so editing any stored
    event breaks every link after it.
    """
    link = (entity_type, str(entity_id), action, payload_hash, prev_hash or GENESIS)
    return _sha256(_SEPARATOR.join(link))
