"""
Utility functions for hashing, serialisation and progress display.
"""

import hashlib
import json
from typing import Any


def calculate_sha256(data: bytes) -> str:
    """
    Calculate SHA256 hash of data.

    Args:
        data: Bytes to hash

    Returns:
        Hexadecimal hash string
    """
    return hashlib.sha256(data).hexdigest()


def short_hash(full_hash: str, length: int = 16) -> str:
    """
    Get shortened version of hash for display.

    Args:
        full_hash: Full hash string
        length: Number of characters to keep

    Returns:
        Shortened hash
    """
    return full_hash[:length] if full_hash else ''


def stable_json(payload: Any) -> str:
    """Serialise with sorted keys so equal payloads give equal text."""
    return json.dumps(payload, indent=2, sort_keys=True)


def format_progress(fraction: float) -> str:
    """
    Format a progress fraction for display.

    Args:
        fraction: Value between 0 and 1

    Returns:
        Text like '75% complete'
    """
    return f'{round(fraction * 100)}% complete'
