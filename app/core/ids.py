"""
Document identifier generation.
Short, URL-safe, lowercase alphanumeric ids; no coordination between callers.
"""

import secrets
import string

ALPHABET = string.ascii_lowercase + string.digits


def generate_id(length: int = 12) -> str:
    """
    Generate a random document id.

    With 36 symbols per position a 12 character id gives about 4.7e18
    combinations, which is enough for one college's ledger.
    """
    if length < 1:
        raise ValueError("id length must be positive")
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def attendance_id(student_id: str, date_key: str) -> str:
    """One attendance document per student per calendar day."""
    return f"{student_id}_{date_key}"
