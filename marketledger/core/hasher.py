"""Canonical hashing helpers for the event chain and anchors."""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes — deterministic, sorted, compact.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_event_hash(event_dict: dict[str, Any]) -> str:
    """SHA-256 of an event (excluding the event_hash field itself).

    This is the seal that makes each event tamper-evident.
    """
    d = {k: v for k, v in event_dict.items() if k != "event_hash"}
    return sha256_hex(canonical_json_bytes(d))
