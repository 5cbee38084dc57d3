"""
Utility functions for prnotary.

Provides canonical JSON serialization, hashing, encoding, and time utilities.
"""

import base64
import hashlib
import json
import time
from datetime import datetime, timezone
from typing import Any, Union


def canonicalize(obj: Any) -> bytes:
    """
    Convert object to canonical JSON bytes.

    Canonical JSON:
    - Lexicographically sorted keys
    - No whitespace
    - UTF-8 encoded
    """
    s = json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=False)
    return s.encode('utf-8')


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def sha256_bytes(data: Union[bytes, str]) -> bytes:
    """Compute SHA-256 hash and return as bytes."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).digest()


def now_epoch() -> int:
    """Get current Unix timestamp as integer."""
    return int(time.time())


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """Base64 decode string to bytes."""
    return base64.b64decode(s.encode('ascii'))


def utc_rfc3339(ts_epoch: int) -> str:
    """Convert Unix timestamp to RFC3339 UTC string."""
    return datetime.fromtimestamp(ts_epoch, tz=timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


def mask_sensitive(value: str, visible_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only the last N characters.
    Useful for logging.
    """
    if len(value) <= visible_chars:
        return '*' * len(value)
    return '*' * (len(value) - visible_chars) + value[-visible_chars:]
