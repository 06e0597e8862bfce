"""Utilities for content hashing."""

import hashlib


def compute_content_hash(raw_text: str) -> str:
    """Compute a stable content hash for an article's raw text.

    Line endings and trailing whitespace are normalized first, so a file that
    is only re-saved with CRLF endings keeps its hash and is not re-indexed.

    Args:
        raw_text: Raw article text (front matter and body)

    Returns:
        Hex-encoded sha256 digest
    """
    lines = [line.rstrip() for line in raw_text.replace("\r\n", "\n").split("\n")]
    normalized = "\n".join(lines).strip()
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()
