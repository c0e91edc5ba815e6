"""Request signing for webhook deliveries.

verify_signature is the receiver-side counterpart of sign_payload: endpoints
written in Python can import it to check X-Signature.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from typing import Mapping

from .constants import SIGNATURE_PREFIX

# The receiver recomputes the HMAC over this exact byte string, so the layout is
# part of the wire contract: compact separators, UTF-8 text, payload fields in
# their declared order with "timestamp" appended last.
_SEPARATORS = (",", ":")


def compact_json(obj) -> str:
    """Serialize like a browser/Node ``JSON.stringify`` would (no whitespace)."""
    return json.dumps(obj, separators=_SEPARATORS, ensure_ascii=False)


def canonical_json(payload: Mapping, timestamp: str) -> str:
    """Return the signed material for ``payload`` at ``timestamp``.

    A ``timestamp`` key already present in the payload keeps its position but
    takes the new value.
    """
    return compact_json({**payload, "timestamp": timestamp})


def sign_payload(payload: Mapping, timestamp: str, key: str) -> str:
    """HMAC-SHA256 of the canonical JSON of ``payload`` + ``timestamp``, as lowercase hex."""
    body = canonical_json(payload, timestamp).encode("utf-8")
    return hmac.new(key.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(payload: Mapping, timestamp: str, key: str, signature: str) -> bool:
    """Check an ``X-Signature`` value (with or without the ``sha256=`` prefix)."""
    if signature.startswith(SIGNATURE_PREFIX):
        signature = signature[len(SIGNATURE_PREFIX):]
    return hmac.compare_digest(sign_payload(payload, timestamp, key), signature.lower())
