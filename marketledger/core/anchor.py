"""Ed25519 signing of event log anchors via PyNaCl.

An anchor exported by ``EventLog.export_anchor()`` can be signed and stored
outside the system. Verifying the signature later proves the anchor itself
was not altered; ``EventLog.verify_against_anchor()`` then proves the chain
still matches it.
"""

from __future__ import annotations

import logging
from typing import Any

import nacl.signing
from nacl.exceptions import BadSignatureError

from marketledger.core.hasher import canonical_json_bytes

logger = logging.getLogger(__name__)

_SIGNATURE_KEY = "signature"


def generate_keypair() -> tuple[str, str]:
    """Return ``(signing_key_hex, verify_key_hex)`` for a fresh Ed25519 pair."""
    sk = nacl.signing.SigningKey.generate()
    return sk.encode().hex(), sk.verify_key.encode().hex()


def _anchor_bytes(anchor: dict[str, Any]) -> bytes:
    payload = {k: v for k, v in anchor.items() if k != _SIGNATURE_KEY}
    return canonical_json_bytes(payload)


def sign_anchor(anchor: dict[str, Any], signing_key: str) -> dict[str, Any]:
    """Return a copy of *anchor* carrying a hex ``signature`` field."""
    sk = nacl.signing.SigningKey(bytes.fromhex(signing_key))
    signed = sk.sign(_anchor_bytes(anchor))
    return {**anchor, _SIGNATURE_KEY: signed.signature.hex()}


def verify_anchor(anchor: dict[str, Any], verify_key: str) -> bool:
    """Check the anchor's signature under *verify_key*.

    Fail-closed: a missing, malformed or mismatching signature returns False.
    """
    signature = anchor.get(_SIGNATURE_KEY, "")
    if not signature:
        return False
    try:
        vk = nacl.signing.VerifyKey(bytes.fromhex(verify_key))
        vk.verify(_anchor_bytes(anchor), bytes.fromhex(signature))
    except (BadSignatureError, ValueError, TypeError):
        logger.warning("Anchor signature verification failed.")
        return False
    return True
