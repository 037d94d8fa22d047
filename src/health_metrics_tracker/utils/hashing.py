"""
Hashing and identifier generation utilities.
"""

import hashlib
from datetime import datetime


def generate_mapping_id(name: str, created_at: datetime, length: int = 16) -> str:
    """
    Generate an identifier for a saved column mapping.

    Args:
        name: Mapping name.
        created_at: Creation timestamp (microsecond precision).
        length: Number of hex characters to keep.

    Returns:
        Hex string identifier.
    """
    hash_string = f"{name}|{created_at.isoformat()}"
    return hashlib.sha256(hash_string.encode("utf-8")).hexdigest()[:length]


def compute_text_hash(text: str, algorithm: str = "md5") -> str:
    """
    Compute the hash of an uploaded file's text content.

    Args:
        text: File contents.
        algorithm: Hash algorithm to use.

    Returns:
        Hex string of the content hash.
    """
    hash_func = hashlib.new(algorithm)
    hash_func.update(text.encode("utf-8"))
    return hash_func.hexdigest()
