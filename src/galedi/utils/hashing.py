"""
Content hashing for record de-duplication.
"""

import hashlib
from collections.abc import Sequence


def content_fingerprint(raw_fields: Sequence[str]) -> str:
    """
    SHA-256 hex digest of the raw record fields joined by commas.

    The fields are hashed exactly as they arrived in the source line, so two
    byte-identical lines always produce the same fingerprint.
    """
    raw_line = ",".join(raw_fields)
    return hashlib.sha256(raw_line.encode("utf-8")).hexdigest()
